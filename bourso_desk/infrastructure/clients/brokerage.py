"""Brokerage API HTTP client implementing the adapter contract"""

import json
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

import httpx

from bourso_desk.config import settings
from bourso_desk.domain.exceptions import (
    BrokerageAPIError,
    DomainException,
    InvalidCredentialsError,
    MfaRequiredError,
    QrCodePayloadError,
    TransferRejectedError,
    ValidationFailure,
)
from bourso_desk.domain.jobs import job_from_wire, job_to_wire, order_from_wire, order_to_wire
from bourso_desk.domain.market import parse_trading_summary
from bourso_desk.domain.models import (
    Account,
    AccountKind,
    Job,
    MfaChallenge,
    MfaStatus,
    Order,
    OrderArgs,
    StartupState,
    SummaryItem,
)
from bourso_desk.infrastructure.observability.metrics import adapter_failure_counter, adapter_latency_histogram

SESSION_HEADER = "X-Session-Token"


def parse_challenge(raw: Mapping[str, Any]) -> MfaChallenge:
    return MfaChallenge(id=str(raw["id"]), type=raw["type"], token=raw.get("token", ""))


def parse_account(raw: Mapping[str, Any]) -> Account:
    return Account(
        id=raw["id"],
        name=raw["name"],
        kind=AccountKind(raw["kind"]),
        balance_cents=int(raw["balance"]),
        bank_name=raw["bank_name"],
    )


def parse_order(raw: Mapping[str, Any]) -> Order:
    return Order(
        id=str(raw["id"]),
        price=Decimal(str(raw["price"])),
        args=order_from_wire(raw["args"]),
        timestamp=raw.get("timestamp"),
    )


def error_from_body(body: Mapping[str, Any], status_code: int | None = None) -> DomainException:
    """
    Map a wire error body ``{"kind": ..., "message": ...}`` onto the domain taxonomy.

    An "mfa required" message is treated as the MFA signal whatever its kind.
    """
    kind = body.get("kind")
    message = body.get("message") or (
        f"Brokerage API error: {status_code}" if status_code else "Brokerage API error"
    )

    if kind == "mfa_required" or "mfa required" in message.lower():
        challenges = [parse_challenge(c) for c in body.get("challenges") or []]
        return MfaRequiredError(message, challenges)
    if kind == "invalid_credentials":
        return InvalidCredentialsError(message)
    if kind == "transfer_rejected":
        return TransferRejectedError(message)
    if kind == "validation":
        return ValidationFailure(message, field=body.get("field"))
    return BrokerageAPIError(message)


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        body = response.json().get("error") or {}
    except (ValueError, AttributeError):
        body = {}
    raise error_from_body(body, response.status_code)


class BrokerageClient:
    """Client for the remote brokerage API

    Each call opens its own ``httpx.AsyncClient``; the authenticated session is
    carried by the token the API hands out at login.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.brokerage_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport
        self.session_token: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        return {SESSION_HEADER: self.session_token} if self.session_token else {}

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        """
        Perform one API call.

        Raises:
            BrokerageAPIError: On timeout, transport errors or an invalid response
            DomainException: The mapped error body of a non-2xx answer
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with adapter_latency_histogram.labels(operation=operation).time():
                    response = await client.request(
                        method,
                        f"{self.base_url}{path}",
                        headers=self._headers(),
                        **kwargs,
                    )
                token = response.headers.get(SESSION_HEADER)
                if token:
                    self.session_token = token
                _raise_for_error(response)
                return response.json() if response.content else None

            except DomainException:
                adapter_failure_counter.labels(operation=operation).inc()
                raise
            except httpx.TimeoutException as e:
                adapter_failure_counter.labels(operation=operation).inc()
                raise BrokerageAPIError(f"Brokerage API timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                adapter_failure_counter.labels(operation=operation).inc()
                raise BrokerageAPIError(f"Brokerage API unreachable: {e}") from e
            except ValueError as e:
                adapter_failure_counter.labels(operation=operation).inc()
                raise BrokerageAPIError(f"Invalid response from brokerage: {e}") from e

    # -- authentication --------------------------------------------------

    async def authenticate(self, client_id: str, password: str) -> None:
        self.session_token = None
        await self._request("authenticate", "POST", "/auth/login", json={"client_id": client_id, "password": password})

    async def list_mfa_challenges(self) -> List[MfaChallenge]:
        data = await self._request("list_mfa_challenges", "GET", "/auth/mfa")
        try:
            return [parse_challenge(c) for c in data.get("challenges", [])]
        except (KeyError, TypeError) as e:
            raise BrokerageAPIError(f"Invalid MFA data from brokerage: {e}") from e

    async def submit_mfa_response(self, challenge: MfaChallenge, code: str) -> None:
        await self._request(
            "submit_mfa_response",
            "POST",
            "/auth/mfa",
            json={"challenge_id": challenge.id, "token": challenge.token, "code": code},
        )

    async def poll_mfa_status(self) -> MfaStatus:
        data = await self._request("poll_mfa_status", "GET", "/auth/mfa/status")
        status = data.get("status")
        if status == "qr_code":
            raise QrCodePayloadError(data.get("data", ""))
        try:
            return MfaStatus(status)
        except ValueError as e:
            raise BrokerageAPIError(f"Unknown MFA status: {status}") from e

    # -- accounts and market data ----------------------------------------

    async def get_accounts(self) -> List[Account]:
        data = await self._request("get_accounts", "GET", "/accounts")
        try:
            return [parse_account(a) for a in data.get("accounts", [])]
        except (KeyError, ValueError, TypeError) as e:
            raise BrokerageAPIError(f"Invalid account data from brokerage: {e}") from e

    async def get_trading_summary(self, account_id: str) -> List[SummaryItem]:
        data = await self._request("get_trading_summary", "GET", f"/trading/{account_id}/summary")
        return parse_trading_summary(data.get("items", []))

    async def get_price_history(self, symbol: str, length_days: int) -> dict:
        return await self._request(
            "get_price_history",
            "GET",
            f"/quotes/{symbol}",
            params={"length": length_days},
        )

    # -- transfers -------------------------------------------------------

    async def transfer_funds(self, source_id: str, target_id: str, amount: str, reason: str) -> AsyncIterator[int]:
        """
        Stream transfer progress.

        The API answers with newline-delimited JSON: ``{"step": n}`` lines,
        then either ``{"status": "ok"}`` or ``{"error": {...}}``.
        """
        payload = {"from": source_id, "to": target_id, "amount": amount, "reason": reason}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/transfers",
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        _raise_for_error(response)

                    confirmed = False
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        event = json.loads(line)
                        if "error" in event:
                            body = dict(event["error"])
                            body.setdefault("kind", "transfer_rejected")
                            raise error_from_body(body)
                        if "step" in event:
                            yield int(event["step"])
                        elif event.get("status") == "ok":
                            confirmed = True

                    if not confirmed:
                        raise BrokerageAPIError("Transfer stream ended without confirmation")

            except DomainException:
                adapter_failure_counter.labels(operation="transfer_funds").inc()
                raise
            except httpx.TimeoutException as e:
                adapter_failure_counter.labels(operation="transfer_funds").inc()
                raise BrokerageAPIError(f"Brokerage API timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                adapter_failure_counter.labels(operation="transfer_funds").inc()
                raise BrokerageAPIError(f"Brokerage API unreachable: {e}") from e
            except ValueError as e:
                adapter_failure_counter.labels(operation="transfer_funds").inc()
                raise BrokerageAPIError(f"Invalid transfer progress from brokerage: {e}") from e

    # -- scheduled jobs and orders ---------------------------------------

    async def get_startup_state(self) -> StartupState:
        data = await self._request("get_startup_state", "GET", "/startup")
        return StartupState(
            dca_without_password=bool(data.get("dca_without_password")),
            jobs_to_run=[job_from_wire(j) for j in data.get("jobs_to_run", [])],
        )

    async def list_scheduled_jobs(self) -> List[Job]:
        data = await self._request("list_scheduled_jobs", "GET", "/jobs")
        return [job_from_wire(j) for j in data.get("jobs", [])]

    async def add_scheduled_job(self, job: Job) -> None:
        await self._request("add_scheduled_job", "PUT", f"/jobs/{job.id}", json=job_to_wire(job))

    async def delete_scheduled_job(self, job_id: str) -> None:
        await self._request("delete_scheduled_job", "DELETE", f"/jobs/{job_id}")

    async def run_job_manually(self, job: Job) -> Order:
        data = await self._request("run_job_manually", "POST", f"/jobs/{job.id}/run", json=job_to_wire(job))
        return parse_order(data)

    async def place_order(self, args: OrderArgs) -> Order:
        data = await self._request("place_order", "POST", "/orders", json=order_to_wire(args))
        return parse_order(data)
