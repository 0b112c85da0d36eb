"""Events published to the presentation layer"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, List, Optional, Type

from bourso_desk.domain.models import Job, MfaChallenge, Notification, SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionStateChanged:
    previous: SessionState
    current: SessionState
    error: Optional[str] = None


@dataclass(frozen=True)
class MfaChallengeReceived:
    challenge: MfaChallenge
    chained: bool = False


@dataclass(frozen=True)
class MfaQrCodeReceived:
    data: str


@dataclass(frozen=True)
class TransferRequested:
    source_account_id: str
    target_account_id: str


@dataclass(frozen=True)
class TransferProgressed:
    step: int
    label: str


@dataclass(frozen=True)
class DueJobConfirmationRequested:
    job: Job
    description: str


@dataclass(frozen=True)
class NotificationRaised:
    notification: Notification


Handler = Callable[[Any], None]


class EventHub:
    """Synchronous publish/subscribe keyed by event class

    ``subscribe`` returns the matching unsubscribe callable so listeners can be
    released deterministically (modal close, prompt dismissal).
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        for handler in list(self._handlers[type(event)]):
            handler(event)

    def listener_count(self, event_type: Type) -> int:
        return len(self._handlers[event_type])
