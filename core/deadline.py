"""
core/deadline.py -- Per-call deadline passed explicitly into service operations.

Every AuthService / UserService operation accepts an optional Deadline. The
service checks it before each store call and aborts with DeadlineExceeded once
the budget is spent. Nothing retries -- retries, if any, belong to the store.

Usage:
    deadline = Deadline.after(get_settings().request_timeout_seconds)
    service.login("alice", "s3cret!", deadline=deadline)

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import time
from dataclasses import dataclass


class DeadlineExceeded(TimeoutError):
    """Raised when a service call runs past its deadline.

    Deliberately not part of the auth error taxonomy: the caller cannot act on
    it except by retrying, so the HTTP layer maps it to a gateway timeout.
    """


@dataclass(frozen=True)
class Deadline:
    """Absolute point on the monotonic clock after which work must stop."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(expires_at=time.monotonic() + seconds)

    def remaining(self) -> float:
        """Seconds left before expiry; never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str = "operation") -> None:
        """Raise DeadlineExceeded if the deadline has already passed."""
        if self.expired():
            raise DeadlineExceeded(f"{operation} exceeded its deadline")
