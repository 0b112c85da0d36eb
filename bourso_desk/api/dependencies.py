"""Dependency injection for FastAPI endpoints"""

from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import HTTPException, Request

from bourso_desk.config import settings
from bourso_desk.domain.events import EventHub
from bourso_desk.domain.exceptions import (
    BrokerageAPIError,
    DomainException,
    InvalidCredentialsError,
    MfaExhaustedError,
    MfaRequiredError,
    SessionStateError,
    TransferRejectedError,
    ValidationFailure,
)
from bourso_desk.domain.models import SessionOptions
from bourso_desk.domain.ports import BrokerageAdapter, CredentialStore, OrderHistory
from bourso_desk.domain.transfers import TransferSelection
from bourso_desk.infrastructure.clients.brokerage import BrokerageClient
from bourso_desk.infrastructure.clients.demo import DemoBrokerage
from bourso_desk.infrastructure.database.models import Base
from bourso_desk.infrastructure.database.repositories import CredentialRepository, OrderHistoryRepository
from bourso_desk.infrastructure.database.session import SessionLocal, engine
from bourso_desk.services.jobs import JobBoard
from bourso_desk.services.session import SessionCoordinator
from bourso_desk.services.transfer import TransferExecutor


@dataclass
class DeskContext:
    """Everything one desk session needs, wired on a shared event hub"""

    events: EventHub
    session: SessionCoordinator
    selection: TransferSelection
    executor: TransferExecutor
    board: JobBoard


def build_context(
    adapter: BrokerageAdapter,
    options: SessionOptions,
    credential_store: CredentialStore | None = None,
    order_history: OrderHistory | None = None,
    poll_interval: float = 5.0,
    price_history_days: int = 30,
    saved_assets: Iterable[str] = (),
) -> DeskContext:
    events = EventHub()
    session = SessionCoordinator(
        adapter,
        options,
        events=events,
        credential_store=credential_store,
        poll_interval=poll_interval,
    )
    return DeskContext(
        events=events,
        session=session,
        selection=TransferSelection(events),
        executor=TransferExecutor(adapter, events, on_success=session.refresh),
        board=JobBoard(
            adapter,
            session,
            events=events,
            order_history=order_history,
            price_history_days=price_history_days,
            saved_assets=saved_assets,
        ),
    )


def session_options() -> SessionOptions:
    """Display/runtime options, read once from settings"""
    return SessionOptions(incognito=settings.incognito, dev_mode=settings.dev_mode)


def build_adapter(options: SessionOptions) -> BrokerageAdapter:
    if options.dev_mode:
        return DemoBrokerage()
    return BrokerageClient()


_context: Optional[DeskContext] = None


def get_desk_context() -> DeskContext:
    """Provide the process-wide desk context, built on first use"""
    global _context
    if _context is None:
        Base.metadata.create_all(bind=engine)
        options = session_options()
        _context = build_context(
            build_adapter(options),
            options,
            credential_store=CredentialRepository(SessionLocal),
            order_history=OrderHistoryRepository(SessionLocal),
            poll_interval=settings.mfa_poll_interval_seconds,
            price_history_days=settings.price_history_days,
            saved_assets=settings.saved_assets,
        )
    return _context


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def to_http_error(error: DomainException) -> HTTPException:
    """Translate a domain error into the HTTP status the API reports"""
    if isinstance(error, ValidationFailure):
        return HTTPException(status_code=422, detail=error.message)
    if isinstance(error, InvalidCredentialsError):
        return HTTPException(status_code=401, detail=str(error))
    if isinstance(error, (MfaRequiredError, MfaExhaustedError, SessionStateError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, TransferRejectedError):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, BrokerageAPIError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail="Internal server error")
