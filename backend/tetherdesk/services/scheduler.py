from __future__ import annotations

import logging
import threading

from tetherdesk.config import settings
from tetherdesk.database import SessionLocal
from tetherdesk.services.order_expiry import cancel_expired_orders

logger = logging.getLogger("tetherdesk.scheduler")


def run_expiry_sweep(user_id: int | None = None) -> list[str]:
    db = SessionLocal()
    try:
        return cancel_expired_orders(db, user_id=user_id)
    finally:
        db.close()


class ExpirySweepRunner:
    """Background thread that cancels pending orders past their payment window.

    NOTE: with several workers each one runs a sweep; the conditional UPDATE makes the
    duplicates harmless.
    """

    def __init__(self, interval_seconds: float | None = None) -> None:
        self.interval_seconds = float(
            settings.expiry_sweep_interval_seconds if interval_seconds is None else interval_seconds
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweep-runner", daemon=True)
        self._thread.start()
        logger.info("expiry_sweep_started", extra={"interval_seconds": self.interval_seconds})

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                run_expiry_sweep()
            except Exception as exc:
                logger.exception("expiry_sweep_failed", extra={"error": str(exc)})
            if self._stop.wait(self.interval_seconds):
                break


# Singleton runner for FastAPI lifecycle
runner = ExpirySweepRunner()
