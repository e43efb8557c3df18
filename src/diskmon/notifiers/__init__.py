"""Report notifiers."""

from diskmon.notifiers.base import (
    BaseNotifier,
    DispatchError,
    FatalDispatchError,
    TransientDispatchError,
)
from diskmon.notifiers.dispatcher import BackoffPolicy, NotificationDispatcher
from diskmon.notifiers.email import EmailNotifier, classify_smtp_error

__all__ = [
    "BackoffPolicy",
    "BaseNotifier",
    "DispatchError",
    "EmailNotifier",
    "FatalDispatchError",
    "NotificationDispatcher",
    "TransientDispatchError",
    "classify_smtp_error",
]
