import logging
import threading

from roombook.holds import HoldManager
from roombook.sql_repository import SqlBookingRepository

logger = logging.getLogger(__name__)


class HoldSweeper:
    """Deletes expired holds every `interval_seconds` on a daemon thread."""

    def __init__(self, session_factory, interval_seconds):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread = None

    def sweep_once(self):
        db = self.session_factory()
        try:
            return HoldManager(SqlBookingRepository(db)).purge_expired()
        finally:
            db.close()

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="hold-sweeper", daemon=True)
        self._thread.start()
        logger.info("Hold sweeper started, interval %ss", self.interval_seconds)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Hold sweep failed")
