# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounded retry policy for failed delivery attempts.

A record is attempted at most ``max_attempts`` times in total. Failed
attempts are not delayed beyond the dispatcher's normal pacing: a record that
may be retried simply re-enters the queue at its tail.

Attempts that never reached the transport because the session was down are
not counted here; the dispatcher restores those records instead.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import MessageRecord, MessageStatus

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of :meth:`RetryPolicy.on_failure`."""

    retry: bool
    attempts: int
    reason: str


class RetryPolicy:
    """Decide whether a failed record goes back to the queue or is dropped.

    Attributes:
        max_attempts: Total attempts allowed per record.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.max_attempts = max(1, int(max_attempts))

    def should_retry(self, retry_count: int) -> bool:
        """Return ``True`` while ``retry_count`` failures leave budget for another attempt."""
        return retry_count < self.max_attempts

    def on_failure(self, record: MessageRecord, reason: str) -> RetryDecision:
        """Register a failed attempt on ``record`` and decide what happens next.

        Increments ``retry_count`` and stores the reason. The record status is
        set to PENDING when it may be retried and FAILED otherwise; moving the
        record inside the queue is left to the caller.
        """
        record.retry_count += 1
        record.last_error = reason
        if self.should_retry(record.retry_count):
            record.status = MessageStatus.PENDING
            return RetryDecision(retry=True, attempts=record.retry_count, reason=reason)
        record.status = MessageStatus.FAILED
        return RetryDecision(retry=False, attempts=record.retry_count, reason=reason)


__all__ = ["DEFAULT_MAX_ATTEMPTS", "RetryDecision", "RetryPolicy"]
