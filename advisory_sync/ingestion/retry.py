"""
Explicit retry policy for mirror transports.

Transports fail fast: one failed attempt aborts the run. Operators who
want resilience opt in by setting retry_attempts > 0, which wraps the
transport in RetryingTransport with exponential backoff and jitter.
"""
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from access.credentials import AccessCredential
from config import SyncConfig
from errors import TransportFailure

from .base_transport import MirrorTransport, TransportResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 0           # Retries after the first attempt
    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 120.0
    jitter_ratio: float = 0.3

    @classmethod
    def from_config(cls, config: SyncConfig) -> "RetryPolicy":
        return cls(
            attempts=max(0, config.retry_attempts),
            base_delay_seconds=config.retry_base_seconds,
            max_delay_seconds=config.retry_max_seconds,
        )

    def delay(self, attempt: int) -> float:
        base = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** attempt))
        return base + base * random.uniform(0, self.jitter_ratio)


class RetryingTransport(MirrorTransport):
    """Wraps another transport and retries TransportFailure per RetryPolicy."""

    def __init__(
        self,
        inner: MirrorTransport,
        policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(inner.config)
        self.inner = inner
        self.policy = policy
        self.sleep = sleep
        self.name = inner.name

    def pull(self, credential: AccessCredential, staging_dir: Path) -> TransportResult:
        for attempt in range(self.policy.attempts + 1):
            try:
                result = self.inner.pull(credential, staging_dir)
                result.attempts = attempt + 1
                return result
            except TransportFailure as e:
                if attempt >= self.policy.attempts:
                    raise
                delay = self.policy.delay(attempt)
                logger.warning(
                    f"Transport attempt {attempt + 1} failed ({e}); retrying in {delay:.1f}s"
                )
                self.sleep(delay)

        raise TransportFailure("Transport retry loop exited without a result")
