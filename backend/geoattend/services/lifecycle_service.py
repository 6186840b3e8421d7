"""Background worker that ends classes once their check-in window has closed."""
import logging
import threading
from typing import Callable, List

from sqlalchemy.exc import SQLAlchemyError

from geoattend.services.class_service import ClassService
from geoattend.services.eligibility_service import AdmissionOutcome, EligibilityPolicy
from geoattend.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class ClassLifecycleService:
    """
    Periodically end active classes whose admission window is over.

    Constructed and owned by the process entry point; ``start`` and ``stop``
    control a single daemon thread.
    """

    def __init__(self, app, interval_seconds: float = 60, clock: Callable = utcnow):
        self.app = app
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep(self, now=None) -> List[str]:
        """End every active class whose window closed before ``now``."""
        now = now or self.clock()
        class_service = ClassService(self.app.config)
        ended = []
        for session in class_service.list_active():
            decision = EligibilityPolicy.evaluate(session, now)
            if decision.outcome is AdmissionOutcome.CLOSED:
                class_service.end_class(session, now)
                ended.append(session.id)
        if ended:
            logger.info("Auto-ended %d class(es): %s", len(ended), ', '.join(ended))
        return ended

    def start(self) -> None:
        if self.running:
            logger.warning("Class lifecycle service is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name='class-lifecycle', daemon=True
        )
        self._thread.start()
        logger.info("Class lifecycle service started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float = None) -> None:
        if not self.running:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Class lifecycle service stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            with self.app.app_context():
                try:
                    self.sweep()
                except SQLAlchemyError:
                    logger.exception("Class sweep failed; retrying next tick")
            self._stop_event.wait(self.interval_seconds)
