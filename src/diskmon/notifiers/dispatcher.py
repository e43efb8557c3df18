"""Report delivery with bounded retry."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from diskmon.config import TransportConfig
from diskmon.models import AttemptOutcome, DiskReport, DispatchAttempt, DispatchResult
from diskmon.notifiers.base import BaseNotifier, DispatchError
from diskmon.notifiers.email import EmailNotifier, classify_smtp_error

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff without jitter, bounded per wait and in total."""

    initial: float = 1.0
    multiplier: float = 2.0
    max_interval: float = 30.0
    max_elapsed: float = 300.0

    def interval(self, retry: int) -> float:
        """Wait before retry number ``retry`` (1-based)."""
        return min(self.initial * self.multiplier ** (retry - 1), self.max_interval)


class NotificationDispatcher:
    """Send a report, retrying transient failures only.

    Usage:
        dispatcher = NotificationDispatcher()
        result = dispatcher.send(report, config.transport)
        if not result.delivered:
            print(result.reason)
    """

    def __init__(
        self,
        notifier_factory: Callable[[TransportConfig], BaseNotifier] = EmailNotifier,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.notifier_factory = notifier_factory
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff or BackoffPolicy()
        self.sleep = sleep
        self.clock = clock

    def send(self, report: DiskReport, transport: TransportConfig) -> DispatchResult:
        """Deliver ``report`` using already-resolved transport settings."""
        attempts: list[DispatchAttempt] = []
        started = self.clock()

        try:
            notifier = self.notifier_factory(transport)
        except Exception as e:
            error = classify_smtp_error(e)
            logger.error(f"Cannot prepare notifier: {error}")
            return DispatchResult.failed(str(error), attempts)

        number = 0
        while True:
            number += 1
            attempt_start = self.clock()
            try:
                notifier.send_report(report)
            except DispatchError as e:
                error = e
            except Exception as e:
                error = classify_smtp_error(e)
            else:
                attempts.append(DispatchAttempt(number, AttemptOutcome.SUCCESS, self.clock() - attempt_start))
                if number > 1:
                    logger.info(f"Report delivered on attempt {number}")
                return DispatchResult.success(attempts)

            outcome = AttemptOutcome.TRANSIENT if error.retryable else AttemptOutcome.FATAL
            attempts.append(DispatchAttempt(number, outcome, self.clock() - attempt_start, str(error)))
            logger.error(f"Delivery attempt {number}/{self.max_attempts} failed: {error}")

            if not error.retryable:
                return DispatchResult.failed(str(error), attempts)
            if number >= self.max_attempts:
                return DispatchResult.failed(f"giving up after {number} attempts: {error}", attempts)

            delay = self.backoff.interval(number)
            if self.clock() - started + delay > self.backoff.max_elapsed:
                reason = f"retry window exhausted after {number} attempts: {error}"
                logger.error(reason)
                return DispatchResult.failed(reason, attempts)

            logger.warning(f"Retrying delivery in {delay:g}s")
            self.sleep(delay)
