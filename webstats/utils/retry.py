# ==============================================================================
# Retry Policies
# ==============================================================================
"""
Retry policies for reaching the backing stores.

Connecting to PostgreSQL, probing it and applying the schema are retried.
Reads and writes issued by the analytics core are not: a failed insert or
query propagates as StorageError so the caller sees it immediately.

Policies:
- CONNECT: 10 attempts, waits of 1s doubling to 32s (~60 seconds)
- PROBE: 3 attempts (~7 seconds), for status checks from the CLI
"""

import logging
from dataclasses import dataclass
from typing import Tuple, Type

import psycopg2
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

POSTGRES_RETRY_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)

REDIS_RETRY_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry an operation."""

    name: str
    attempts: int
    wait_min: float = 1
    wait_max: float = 32


CONNECT = RetryPolicy("connect", attempts=10)
PROBE = RetryPolicy("probe", attempts=3)


def _before_sleep(logger: logging.Logger, policy: RetryPolicy):
    def _log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s failed (%s attempt %d/%d): %s",
            getattr(retry_state.fn, "__qualname__", "operation"),
            policy.name,
            retry_state.attempt_number,
            policy.attempts,
            error,
        )

    return _log


def retry_on(
    exception_types: Tuple[Type[Exception], ...],
    logger: logging.Logger,
    policy: RetryPolicy = CONNECT,
):
    """
    Build a tenacity decorator that retries the given exceptions.

    The last error is re-raised once the policy's attempts are used up.

    Example:
        @retry_on(POSTGRES_RETRY_EXCEPTIONS, logger)
        def connect(self):
            ...
    """
    return retry(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(multiplier=1, min=policy.wait_min, max=policy.wait_max),
        retry=retry_if_exception_type(exception_types),
        before_sleep=_before_sleep(logger, policy),
        reraise=True,
    )


def valkey_retry(policy: RetryPolicy = CONNECT) -> Retry:
    """redis-py retry strategy equivalent to a policy, for the Valkey client."""
    backoff = ExponentialBackoff(cap=policy.wait_max, base=policy.wait_min)
    return Retry(backoff, retries=policy.attempts)
