"""Mock brokerage server speaking the wire API of BrokerageClient, backed by the demo data"""

import json
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse

from bourso_desk.domain.exceptions import DomainException
from bourso_desk.domain.jobs import job_from_wire, job_to_wire, order_from_wire, order_to_wire
from bourso_desk.infrastructure.clients.demo import DemoBrokerage

app = FastAPI(title="Mock Brokerage Server", version="1.0.0")

# Client id that goes through a chained SMS then push MFA; any other logs in directly
# The push challenge is confirmed on the second status poll
MFA_CLIENT_ID = "1234567"
MFA_CODE = "123456"
BAD_PASSWORD = "00000000"

demo = DemoBrokerage()
sessions: Dict[str, Dict[str, Any]] = {}


def error(status: int, kind: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": {"kind": kind, "message": message, **extra}})


def order_body(order) -> Dict[str, Any]:
    return {"id": order.id, "price": float(order.price), "args": order_to_wire(order.args), "timestamp": order.timestamp}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/auth/login")
async def login(request: Request):
    body = await request.json()
    if body.get("password") == BAD_PASSWORD:
        return error(401, "invalid_credentials", "invalid credentials")

    token = uuid.uuid4().hex
    if body.get("client_id") == MFA_CLIENT_ID:
        sessions[token] = {"stage": 1, "confirmed": False, "polls": 0}
        response = error(401, "mfa_required", "mfa required")
    else:
        sessions[token] = {"stage": 0, "confirmed": True, "polls": 0}
        response = JSONResponse(content={"status": "ok"})
    response.headers["X-Session-Token"] = token
    return response


@app.get("/auth/mfa")
def list_mfa(x_session_token: str = Header("")):
    stage = sessions.get(x_session_token, {}).get("stage", 0)
    challenges = [{"id": "otp-sms", "type": "sms", "token": "t1"}]
    if stage >= 2:
        challenges.append({"id": "otp-push", "type": "push", "token": "t2"})
    return {"challenges": challenges if stage else []}


@app.post("/auth/mfa")
async def submit_mfa(request: Request, x_session_token: str = Header("")):
    body = await request.json()
    session = sessions.get(x_session_token)
    if session is None:
        return error(401, "unauthenticated", "no session")
    if body.get("code") != MFA_CODE:
        return error(400, "invalid_code", "Invalid one-time password")
    if session["stage"] == 1:
        session["stage"] = 2
        return error(401, "mfa_required", "mfa required")
    session["confirmed"] = True
    return {"status": "ok"}


@app.get("/auth/mfa/status")
def mfa_status(x_session_token: str = Header("")):
    session = sessions.get(x_session_token, {})
    if session.get("stage", 0) >= 2:
        session["polls"] += 1
        session["confirmed"] = session["confirmed"] or session["polls"] >= 2
    return {"status": "confirmed" if session.get("confirmed") else "pending"}


@app.get("/accounts")
async def accounts():
    return {
        "accounts": [
            {"id": a.id, "name": a.name, "kind": a.kind.value, "balance": a.balance_cents, "bank_name": a.bank_name}
            for a in await demo.get_accounts()
        ]
    }


@app.get("/trading/{account_id}/summary")
async def trading_summary(account_id: str):
    try:
        items = await demo.get_trading_summary(account_id)
    except DomainException as e:
        return error(404, "not_found", str(e))
    cash, positions = items[0].cash, items[1].positions

    def value(v):
        return {"value": v.value, "decimals": v.decimals, "currency": v.currency}

    return {
        "items": [
            {"id": "account", "account": {"cash": value(cash)}},
            {
                "id": "positions",
                "positions": [
                    {"symbol": p.symbol, "label": p.label, "quantity": value(p.quantity), "buyingPrice": value(p.buying_price)}
                    for p in positions
                ],
            },
        ]
    }


@app.get("/quotes/{symbol}")
async def quotes(symbol: str, length: int = 30):
    return await demo.get_price_history(symbol, length)


@app.post("/transfers")
async def transfer(request: Request):
    body = await request.json()

    async def progress():
        try:
            async for step in demo.transfer_funds(body["from"], body["to"], body["amount"], body.get("reason", "")):
                yield json.dumps({"step": step}) + "\n"
        except DomainException as e:
            yield json.dumps({"error": {"kind": "transfer_rejected", "message": str(e)}}) + "\n"
            return
        yield json.dumps({"status": "ok"}) + "\n"

    return StreamingResponse(progress(), media_type="application/x-ndjson")


@app.get("/startup")
async def startup():
    return {"dca_without_password": False, "jobs_to_run": []}


@app.get("/jobs")
async def list_jobs():
    return {"jobs": [job_to_wire(j) for j in await demo.list_scheduled_jobs()]}


@app.put("/jobs/{job_id}")
async def put_job(job_id: str, request: Request):
    await demo.add_scheduled_job(job_from_wire(await request.json()))
    return {"status": "ok"}


@app.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    await demo.delete_scheduled_job(job_id)
    return {"status": "ok"}


@app.post("/jobs/{job_id}/run")
async def run_job(job_id: str, request: Request):
    try:
        order = await demo.run_job_manually(job_from_wire(await request.json()))
    except DomainException as e:
        return error(400, "order_failed", str(e))
    return order_body(order)


@app.post("/orders")
async def place_order(request: Request):
    try:
        order = await demo.place_order(order_from_wire(await request.json()))
    except DomainException as e:
        return error(400, "order_failed", str(e))
    return order_body(order)
