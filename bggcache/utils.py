import functools
from datetime import datetime, timezone

from loguru import logger


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def logged_job(func):
    """
    A decorator for scheduled coroutines that logs entry, exit, and exceptions.

    Features:
    - Logs the job name before execution
    - Logs and re-raises exceptions so the scheduler records the failure
    - Preserves function metadata and return values
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        func_name = func.__name__
        logger.info(f"Entering {func_name}")

        try:
            result = await func(*args, **kwargs)
            logger.info(f"{func_name} finished")
            return result
        except Exception as e:
            logger.error(f"Exception in {func_name}: {type(e).__name__}: {e}")
            raise

    return wrapper
