"""Retry policy for failed stock checks.

Each test instance (a test id such as ``profit_loss[chrome-INFY]``)
gets up to ``max_retries`` extra attempts. The cause of the failure is not
inspected: a flaky network blip and a genuine assertion failure are retried
the same way, and the final attempt decides the outcome.
"""

import threading
from collections import defaultdict

from nse_stock.logger import get_logger

log = get_logger(__name__)


class RetryPolicy:
    """Thread-safe per-test-instance retry counter."""

    def __init__(self, max_retries: int) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self._attempts: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def should_retry(self, test_id: str, reason: str = "") -> bool:
        """Record a failure of ``test_id`` and say whether to run it again."""
        with self._lock:
            if self._attempts[test_id] >= self.max_retries:
                log.error(
                    "Retry budget exhausted",
                    test_id=test_id,
                    retries=self._attempts[test_id],
                    reason=reason,
                )
                return False
            self._attempts[test_id] += 1
            attempt = self._attempts[test_id]

        log.warning(
            "Retrying failed check",
            test_id=test_id,
            attempt=attempt,
            max_retries=self.max_retries,
            reason=reason,
        )
        return True

    def retries(self, test_id: str) -> int:
        """Retries already granted to ``test_id``."""
        with self._lock:
            return self._attempts.get(test_id, 0)

    def reset(self, test_id: str | None = None) -> None:
        with self._lock:
            if test_id is None:
                self._attempts.clear()
            else:
                self._attempts.pop(test_id, None)
