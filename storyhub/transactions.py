"""
Story Transactions
Runs a unit of work in one database transaction, retrying with exponential
backoff when a concurrent writer wins or the database reports a lock timeout
"""
import os
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .core import TRANSACTION_RETRIES_TOTAL
from .errors import PersistenceError, StaleSessionError

logger = logging.getLogger(__name__)

T = TypeVar('T')

FRAGMENT_MAX_RETRIES = int(os.getenv('FRAGMENT_MAX_RETRIES', '5'))

RETRYABLE_ERRORS = (
    'locked',
    'busy',
    'deadlock',
    'could not serialize',
    'serialization failure',
    'lock timeout',
)

DUPLICATE_KEY_ERRORS = (
    'unique constraint',
    'duplicate key',
    'uniqueviolation',
)


class RetryConfig:
    """Configuration for transaction retry behavior."""

    def __init__(
        self,
        max_retries: int = FRAGMENT_MAX_RETRIES,
        initial_delay: float = 0.05,
        backoff_multiplier: float = 2.0,
        max_delay: float = 1.0
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "max_retries": self.max_retries,
            "initial_delay": f"{self.initial_delay}s",
            "backoff_multiplier": f"{self.backoff_multiplier}x",
            "max_delay": f"{self.max_delay}s"
        }


DEFAULT_RETRY_CONFIG = RetryConfig()


def _error_message(exc: DBAPIError) -> str:
    return str(exc.orig if exc.orig is not None else exc).lower()


def _is_retryable(exc: DBAPIError) -> bool:
    error_msg = _error_message(exc)
    return any(err in error_msg for err in RETRYABLE_ERRORS)


def _is_duplicate_key(exc: IntegrityError) -> bool:
    """Two writers inserted the same key. Other integrity violations never go away on retry."""
    if getattr(exc.orig, 'pgcode', None) == '23505':
        return True
    error_msg = _error_message(exc)
    return any(err in error_msg for err in DUPLICATE_KEY_ERRORS)


async def run_in_transaction(
    sessionmaker,
    work: Callable[..., Awaitable[T]],
    retry: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> T:
    """
    Execute `work(session)` inside a single transaction.

    Everything `work` writes commits together or not at all. Errors raised by
    `work` itself roll the transaction back and propagate unchanged. Version
    conflicts, duplicate-key races and lock timeouts roll back and re-run
    `work` from scratch on a fresh session, so `work` must re-read its state.

    Raises:
        StaleSessionError: conflicts persisted through every retry
        PersistenceError: any other database failure (including non-duplicate
            integrity violations), or lock retries exhausted
    """
    delay = retry.initial_delay
    last_error = None

    for attempt in range(retry.max_retries + 1):
        try:
            async with sessionmaker() as session:
                async with session.begin():
                    return await work(session)

        except StaleDataError as e:
            reason = 'conflict'
            last_error = e

        except IntegrityError as e:
            if not _is_duplicate_key(e):
                logger.error({'msg': 'transaction_rejected', 'error': str(e)})
                raise PersistenceError('Story data violates a database constraint') from e
            reason = 'conflict'
            last_error = e

        except DBAPIError as e:
            if not _is_retryable(e):
                logger.error({'msg': 'transaction_failed', 'error': str(e)})
                raise PersistenceError('Error while saving story') from e
            reason = 'locked'
            last_error = e

        if attempt >= retry.max_retries:
            logger.error({
                'msg': 'transaction_retries_exhausted',
                'attempts': attempt + 1,
                'reason': reason,
                'error': str(last_error),
            })
            if reason == 'conflict':
                raise StaleSessionError('Story was modified concurrently, please retry') from last_error
            raise PersistenceError('Story storage is busy, please retry') from last_error

        TRANSACTION_RETRIES_TOTAL.labels(reason=reason).inc()
        logger.warning({
            'msg': 'transaction_retry',
            'attempt': attempt + 1,
            'max_attempts': retry.max_retries + 1,
            'reason': reason,
            'delay': round(delay, 3),
        })
        await asyncio.sleep(delay)
        delay = min(delay * retry.backoff_multiplier, retry.max_delay)

    # unreachable: the loop either returns or raises
    raise PersistenceError(f'Max retries ({retry.max_retries}) exhausted. Last error: {last_error}')
