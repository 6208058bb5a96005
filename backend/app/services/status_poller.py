import logging
import threading
from typing import Callable, Dict

from flask import Flask

from ..database import db
from ..models.optimization import Optimization
from .optimization_orchestrator import OptimizationOrchestrator

logger = logging.getLogger(__name__)


class StatusPoller:
    """
    Re-checks running optimizations on a timer instead of blocking a request.

    Each scheduled check runs on its own ``threading.Timer`` inside an app
    context. While the optimization stays ``running`` the check re-arms
    itself, up to ``max_polls`` checks; after that it stops and the
    optimization is left ``running`` for a later manual status check.
    """

    def __init__(
        self,
        app: Flask,
        orchestrator: OptimizationOrchestrator,
        interval_seconds: float = 10,
        max_polls: int = 180,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self.app = app
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.max_polls = max_polls
        self._timer_factory = timer_factory
        self._timers: Dict[int, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, optimization_id: int, attempt: int = 1) -> None:
        """Arm a status check for *optimization_id*, replacing any pending one."""
        timer = self._timer_factory(self.interval_seconds, self._tick, args=(optimization_id, attempt))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(optimization_id, None)
            if previous is not None:
                previous.cancel()
            self._timers[optimization_id] = timer
        timer.start()

    def cancel(self, optimization_id: int) -> bool:
        """Disarm the pending check; returns whether one was pending."""
        with self._lock:
            timer = self._timers.pop(optimization_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def pending(self) -> list:
        with self._lock:
            return sorted(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _tick(self, optimization_id: int, attempt: int) -> None:
        with self._lock:
            self._timers.pop(optimization_id, None)

        with self.app.app_context():
            try:
                self._check(optimization_id, attempt)
            finally:
                db.session.remove()

    def _check(self, optimization_id: int, attempt: int) -> None:
        optimization = db.session.get(Optimization, optimization_id)
        if optimization is None or not optimization.is_running():
            return

        try:
            status = self.orchestrator.check_status(optimization)
        except Exception:
            # check_status has already marked the optimization as failed.
            logger.exception(f"Background status check {attempt} failed for optimization {optimization_id}")
            return

        if not optimization.is_running():
            logger.info(f"Optimization {optimization_id} reached '{optimization.status}' after {attempt} checks")
            return

        if attempt >= self.max_polls:
            logger.warning(
                f"Giving up polling optimization {optimization_id} after {attempt} checks "
                f"(last state '{status['state']}'); it stays running"
            )
            return

        self.schedule(optimization_id, attempt + 1)
