"""Transfer executor - submits one transfer and tracks its 10-step progress"""

import contextlib
import logging
import time
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from bourso_desk.domain.events import EventHub, NotificationRaised, TransferProgressed, TransferRequested
from bourso_desk.domain.exceptions import DomainException, SessionStateError
from bourso_desk.domain.models import Notification, TransferRequest
from bourso_desk.domain.ports import BrokerageAdapter
from bourso_desk.domain.transfers import (
    next_display_step,
    progress_percent,
    step_label,
    validate_transfer_form,
)
from bourso_desk.infrastructure.observability.logging import log_transfer_outcome
from bourso_desk.infrastructure.observability.metrics import adapter_latency_histogram, record_transfer

logger = logging.getLogger(__name__)


class TransferExecutor:
    """
    Holds the open transfer request (the "modal") and drives its submission.

    A request is opened by a TransferRequested event. While a submission is in
    flight the request can neither be resubmitted nor closed. Success clears
    the request and triggers ``on_success`` (an account re-fetch); failure
    keeps amount and reason for a retry.
    """

    def __init__(
        self,
        adapter: BrokerageAdapter,
        events: EventHub | None = None,
        on_success: Callable[[], Awaitable[None]] | None = None,
    ):
        self.adapter = adapter
        self.events = events or EventHub()
        self.on_success = on_success

        self.request: Optional[TransferRequest] = None
        self.in_flight = False
        self.error: Optional[str] = None
        self.confirmation: Optional[str] = None

        self._unsubscribe = self.events.subscribe(TransferRequested, self._on_requested)

    def _on_requested(self, event: TransferRequested) -> None:
        if self.in_flight:
            logger.warning("Transfer requested while another one is in flight, ignoring")
            return
        self.open(event.source_account_id, event.target_account_id)

    def open(self, source_account_id: str, target_account_id: str) -> TransferRequest:
        if self.in_flight:
            raise SessionStateError("A transfer is already in flight")
        self.request = TransferRequest(source_account_id=source_account_id, target_account_id=target_account_id)
        self.error = None
        return self.request

    @property
    def can_submit(self) -> bool:
        return self.request is not None and not self.in_flight

    @property
    def can_close(self) -> bool:
        return not self.in_flight

    @property
    def progress_step(self) -> int:
        return self.request.progress_step if self.request else 0

    @property
    def progress_percent(self) -> float:
        return progress_percent(self.progress_step)

    def _notify(self, level: str, title: str, description: str = "") -> None:
        self.events.publish(NotificationRaised(Notification(level=level, title=title, description=description)))

    async def submit(self, amount: str, reason: str | None = None) -> bool:
        """
        Validate and submit the open request.

        Flow:
        1. Validate amount and reason (ValidationFailure, nothing submitted)
        2. Reset progress to 0 and stream steps from the adapter
        3. Display steps monotonically, clamped to 1..10

        Returns True on success, False when the adapter failed.
        """
        if self.request is None:
            raise SessionStateError("No transfer is open")
        if self.in_flight:
            raise SessionStateError("A transfer is already in flight")

        value, clean_reason = validate_transfer_form(amount, reason)
        request = self.request
        request.amount = value
        request.reason = clean_reason
        request.progress_step = 0
        self.error = None

        self.in_flight = True
        start = time.perf_counter()
        try:
            stream = self.adapter.transfer_funds(
                request.source_account_id,
                request.target_account_id,
                format(value, "f"),
                clean_reason,
            )
            async with contextlib.aclosing(stream) as steps:
                async for reported in steps:
                    step = next_display_step(request.progress_step, reported)
                    if step != request.progress_step:
                        request.progress_step = step
                        self.events.publish(TransferProgressed(step=step, label=step_label(step)))
        except DomainException as e:
            self._finish(request, value, False, start, str(e))
            return False
        finally:
            self.in_flight = False

        self._finish(request, value, True, start)
        if self.on_success is not None:
            await self.on_success()
        return True

    def _finish(
        self,
        request: TransferRequest,
        amount: Decimal,
        succeeded: bool,
        start: float,
        error: Optional[str] = None,
    ) -> None:
        duration = time.perf_counter() - start
        adapter_latency_histogram.labels(operation="transfer_funds").observe(duration)
        record_transfer(succeeded)
        log_transfer_outcome(
            request.source_account_id,
            request.target_account_id,
            format(amount, "f"),
            succeeded,
            request.progress_step,
            duration * 1000,
            error,
        )

        if succeeded:
            self.confirmation = f"Transfered €{format(amount, 'f')} successfully"
            self._notify("success", self.confirmation)
            self.request = None
            return

        self.error = f"Transfer failed: {error}"
        request.progress_step = 0
        self._notify("error", self.error)

    def close(self) -> None:
        """Close the modal; refused while a submission is in flight"""
        if self.in_flight:
            raise SessionStateError("Cannot close while a transfer is in flight")
        self.request = None
        self.error = None

    def dispose(self) -> None:
        self._unsubscribe()
