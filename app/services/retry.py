"""
Synchronous bounded retry for sends the caller is willing to wait on.

Unlike the durable queue, where failures are recorded and surfaced, this
path blocks the request and retries in place with exponential backoff.
"""
import time
from typing import Callable, Optional, TypeVar

from ..logging_config import get_logger

logger = get_logger("retry")

T = TypeVar("T")


def send_with_retry(
    send_fn: Callable[[], T],
    max_retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple = (Exception,),
) -> T:
    """
    Call ``send_fn`` up to ``max_retries`` times in total.

    Waits ``2 ** attempt`` seconds (1s, 2s, 4s, ...) between attempts and
    re-raises the last error once every attempt has failed.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    last_error: Optional[BaseException] = None
    for attempt in range(max_retries):
        try:
            return send_fn()
        except retry_on as e:
            last_error = e
            if attempt == max_retries - 1:
                break
            delay = 2 ** attempt
            logger.warning(
                "Send attempt failed, retrying",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_seconds=delay,
                detail=str(e),
            )
            sleep(delay)

    raise last_error
