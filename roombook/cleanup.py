import logging

logger = logging.getLogger(__name__)


def run_best_effort(action, description, *args):
    # housekeeping only; the caller's outcome is already decided
    try:
        action(*args)
    except Exception:
        logger.warning("best-effort %s failed", description, exc_info=True)
        return False
    return True
