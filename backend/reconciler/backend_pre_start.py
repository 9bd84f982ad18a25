"""
Pre-start check

Waits until the database accepts connections before migrations run and the
API starts (containers may come up before the database is ready).

Run:
    python -m reconciler.backend_pre_start
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from reconciler.core.db import engine
from reconciler.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

max_tries = 60 * 5  # five minutes
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    Run ``SELECT 1`` against the database

    Raises:
        Exception: connection failure; tenacity retries until ``max_tries``
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    setup_logging()
    logger.info("Initializing service")
    init(engine)
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()
