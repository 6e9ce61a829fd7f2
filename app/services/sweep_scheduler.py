import logging
import os
import time

from app.config import INACTIVE_SWEEP_BATCH_SIZE, SWEEP_INTERVAL_SECONDS
from app.db import SessionLocal
from app.services.inactivity_sweep import run_inactivity_sweep_once


logger = logging.getLogger(__name__)


def run_sweep_loop(
    *,
    worker_id: str | None = None,
    interval_seconds: int = SWEEP_INTERVAL_SECONDS,
    batch_size: int = INACTIVE_SWEEP_BATCH_SIZE,
    max_iterations: int | None = None,
):
    if worker_id is None:
        worker_id = os.getenv("SWEEP_WORKER_ID") or os.getenv("HOSTNAME") or "worker"

    logger.info(
        "inactivity sweep scheduler started",
        extra={"worker_id": worker_id, "interval_seconds": interval_seconds, "batch_size": batch_size},
    )

    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1

        db = SessionLocal()
        try:
            stats = run_inactivity_sweep_once(db, batch_size=batch_size)
            db.commit()
            logger.info("inactivity sweep finished", extra={"worker_id": worker_id, **stats.as_dict()})
        except Exception:
            db.rollback()
            logger.exception("inactivity sweep failed", extra={"worker_id": worker_id})
        finally:
            db.close()

        if max_iterations is not None and iterations >= max_iterations:
            break
        time.sleep(interval_seconds)


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL") or "INFO")
    run_sweep_loop()


if __name__ == "__main__":
    main()
