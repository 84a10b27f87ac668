import logging
from tierguard.core.config import settings


def log_failure(logger: logging.Logger, action: str, error: BaseException, **context):
    """
    Log a failed operation.

    Outside production the exception text and context are logged for
    debugging. In production only the action and the exception type are
    logged, so provider payloads and account data stay out of the logs.
    """
    if settings.is_production:
        logger.error(f"{action}: Failure - {type(error).__name__}")
        return

    context_str = ", ".join(f"{k}: {v}" for k, v in context.items())
    suffix = f" ({context_str})" if context_str else ""
    logger.error(f"{action}: Failure - {error}{suffix}")
