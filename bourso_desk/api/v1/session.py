"""Session endpoints - login, MFA, logout"""

import logging

from fastapi import APIRouter, Depends, Request

from bourso_desk.api.dependencies import DeskContext, get_desk_context, get_request_id, to_http_error
from bourso_desk.api.v1.schemas import (
    ChallengeSchema,
    DueJobSchema,
    LoginRequest,
    MfaRequest,
    NotificationSchema,
    SessionResponse,
)
from bourso_desk.domain.exceptions import DomainException
from bourso_desk.domain.jobs import job_to_string

router = APIRouter()


def session_response(ctx: DeskContext) -> SessionResponse:
    session = ctx.session
    challenge = session.current_challenge
    return SessionResponse(
        state=session.state.value,
        progress=session.progress,
        description=session.state.description,
        error=session.error,
        prefill_client_id=session.prefill_client_id,
        challenge=ChallengeSchema(id=challenge.id, type=challenge.type, resolved=challenge.resolved)
        if challenge
        else None,
        qr_code=session.qr_code,
        dca_without_password=session.dca_without_password,
        due_jobs=[DueJobSchema(id=j.id, description=job_to_string(j)) for j in session.due_jobs],
        notifications=[
            NotificationSchema(level=n.level, title=n.title, description=n.description)
            for n in session.notifications
        ],
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(ctx: DeskContext = Depends(get_desk_context)):
    return session_response(ctx)


@router.post("/session/login", response_model=SessionResponse)
async def login(body: LoginRequest, request: Request, ctx: DeskContext = Depends(get_desk_context)):
    """
    Submit credentials and run the session up to Ready or MfaPending.

    Authentication failures are not HTTP errors: the session is returned in
    its reset state with the error message (and the client id to pre-fill).
    """
    try:
        await ctx.session.submit_credentials(body.client_id, body.password, body.remember_password)
    except DomainException as e:
        logging.warning(f"Login rejected: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_error(e) from e
    await ctx.board.wait_until_loaded()
    return session_response(ctx)


@router.post("/session/bootstrap", response_model=SessionResponse)
async def bootstrap(ctx: DeskContext = Depends(get_desk_context)):
    """Log in with stored credentials when both are saved"""
    try:
        await ctx.session.bootstrap()
    except DomainException as e:
        raise to_http_error(e) from e
    await ctx.board.wait_until_loaded()
    return session_response(ctx)


@router.post("/session/mfa", response_model=SessionResponse)
async def submit_mfa(body: MfaRequest, ctx: DeskContext = Depends(get_desk_context)):
    try:
        await ctx.session.submit_mfa(body.code)
    except DomainException as e:
        raise to_http_error(e) from e
    await ctx.board.wait_until_loaded()
    return session_response(ctx)


@router.post("/session/mfa/cancel", response_model=SessionResponse)
async def cancel_mfa(ctx: DeskContext = Depends(get_desk_context)):
    await ctx.session.cancel_mfa()
    return session_response(ctx)


@router.post("/session/logout", response_model=SessionResponse)
async def logout(forget: bool = False, ctx: DeskContext = Depends(get_desk_context)):
    try:
        ctx.executor.close()
    except DomainException as e:
        raise to_http_error(e) from e
    ctx.selection.reset()
    await ctx.board.reset()
    await ctx.session.reset(forget_credentials=forget)
    return session_response(ctx)
