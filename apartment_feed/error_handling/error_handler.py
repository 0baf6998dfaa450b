"""
Retry and diagnostics for listing backend calls.

Backend reads are retried with exponential backoff; a final failure is turned
into recovery suggestions the CLI can show next to the error message.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from apartment_feed.config.app_config import RetryConfig


logger = logging.getLogger(__name__)

# (keywords found in the lowercased message, suggestions), first match wins
_SUGGESTIONS: List[Tuple[Tuple[str, ...], List[str]]] = [
    (("connect", "refused"), [
        'Verify the database is running and reachable',
        'Check DATABASE_URL host and port',
    ]),
    (("timeout", "timed out"), [
        'Check your network connection',
        'Try again in a few moments',
    ]),
    (("permission", "denied"), [
        'Make sure you are signed in',
        'Check that the database user can write to the listing tables',
    ]),
]

_SNAPSHOT_SUGGESTION = 'Check LISTINGS_SNAPSHOT_PATH points to a readable JSON file'
_DEFAULT_SUGGESTION = 'Try the action again'


class ErrorHandler:
    """
    Runs backend calls with retries and explains their failures.

    Attributes:
        config: Retry configuration
        give_up_on: Exception types that are raised without retrying; a
            malformed snapshot does not fix itself between attempts
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        give_up_on: Tuple[Type[BaseException], ...] = (ValueError,)
    ):
        self.config = config or RetryConfig()
        self.give_up_on = give_up_on

    async def retry_with_backoff(
        self,
        operation: Callable[..., Awaitable[Any]],
        *args,
        **kwargs
    ) -> Any:
        """
        Await ``operation(*args, **kwargs)``, retrying failed attempts.

        The delay before retry ``n`` (0-indexed) is
        ``config.get_backoff_delay(n)``. At least one attempt is always made.

        Returns:
            Whatever the operation returns on its first successful attempt

        Raises:
            Exception: The error of the last attempt, or the first error whose
                type is in ``give_up_on``
        """
        name = getattr(operation, '__name__', repr(operation))
        attempts = max(1, self.config.max_retries)

        for attempt in range(1, attempts + 1):
            try:
                result = await operation(*args, **kwargs)
            except self.give_up_on as e:
                self._log_attempt(name, attempt, attempts, e)
                logger.error(f"{name} failed with a non-retryable error, giving up")
                raise
            except Exception as e:
                self._log_attempt(name, attempt, attempts, e)
                if attempt == attempts:
                    logger.error(f"{name} failed after {attempts} attempt(s): {e}")
                    raise
                delay = self.config.get_backoff_delay(attempt - 1)
                logger.info(f"Retrying {name} in {delay:.1f}s")
                await asyncio.sleep(delay)
            else:
                if attempt > 1:
                    logger.info(f"{name} succeeded on attempt {attempt}/{attempts}")
                return result

    def describe_backend_error(self, error: Exception) -> Dict[str, Any]:
        """
        Explain a backend failure.

        Args:
            error: The exception raised by the backend

        Returns:
            Dictionary with ``error_type``, ``error_message``, ``timestamp``
            and a list of ``recovery_suggestions``
        """
        message = str(error).lower()
        suggestions = next(
            (list(hints) for keywords, hints in _SUGGESTIONS if any(k in message for k in keywords)),
            None,
        )
        if suggestions is None:
            if isinstance(error, (FileNotFoundError, PermissionError, ValueError)):
                suggestions = [_SNAPSHOT_SUGGESTION]
            else:
                suggestions = [_DEFAULT_SUGGESTION]

        logger.warning(f"Backend error ({type(error).__name__}): {error}")
        logger.info(f"Recovery suggestions: {suggestions}")
        return {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'timestamp': datetime.now().isoformat(),
            'recovery_suggestions': suggestions,
        }

    def _log_attempt(
        self,
        operation_name: str,
        attempt: int,
        attempts: int,
        error: Exception
    ) -> None:
        logger.error(f"{operation_name} attempt {attempt}/{attempts} failed: {type(error).__name__}: {error}")
        logger.debug(f"Failure context: operation={operation_name} attempt={attempt} at={datetime.now().isoformat()}")
