"""Local-only FastAPI shell over the vault transaction pipeline."""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tx_engine.errors import AuthorizationError, VaultError
from tx_engine.models import OperationKind
from tx_engine.objects import SUI_COIN_TYPE
from vault_pipeline.attempt import TransactionAttempt
from vault_pipeline.config import VaultConfig
from vault_pipeline.workflows import VaultPipeline

app = FastAPI(title="Vault Pipeline", description="Local operator API")

_STATE: Dict[str, Optional[VaultPipeline]] = {"pipeline": None}


class AuthorizeRequest(BaseModel):
    operation: str


class DepositRequest(BaseModel):
    amount: int
    coin_type: str = SUI_COIN_TYPE
    balance_manager: Optional[str] = None
    source_coin: Optional[str] = None
    confirm: bool = False


class BotTradeRequest(BaseModel):
    from_asset: str
    to_asset: str
    amount: int
    slippage: float = 0.01
    fee_rate: float = 0.0
    min_deposit: int = 0
    balance_manager: Optional[str] = None
    confirm: bool = False


@app.middleware("http")
async def _local_only(request: Request, call_next):
    client = request.client
    if client is not None:
        host = client.host
        if host not in {"127.0.0.1", "::1", "testclient"}:
            return JSONResponse({"error": "Remote access disabled."}, status_code=403)
    return await call_next(request)


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc), "type": type(exc).__name__}, status_code=400)


async def _handle_denied(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc), "type": type(exc).__name__}, status_code=403)


for _exc_class in (VaultError, ValueError):
    app.add_exception_handler(_exc_class, _handle_errors)
app.add_exception_handler(AuthorizationError, _handle_denied)


@app.get("/api/status")
def status():
    pipeline = _pipeline()
    attempts = pipeline.attempts
    return {
        "sender": pipeline.sender,
        "package": pipeline.vault.package_id,
        "version": pipeline.vault.version_id,
        "attempts": len(attempts),
        "last_attempt": attempts[-1].to_dict() if attempts else None,
    }


@app.post("/api/authorize")
def authorize(payload: AuthorizeRequest):
    try:
        kind = OperationKind(payload.operation.upper())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Unknown operation kind.") from exc
    decision = _pipeline().authorize(kind)
    return {
        "operation": kind.value,
        "authorized": decision.authorized,
        "reason": decision.reason,
        "required": decision.required_kind.value if decision.required_kind else None,
    }


@app.get("/api/balances")
def balances(
    coin_type: List[str] = Query(default=[SUI_COIN_TYPE]),
    balance_manager: Optional[str] = None,
):
    return {"balances": _pipeline().query_balances(coin_type, balance_manager=balance_manager)}


@app.post("/api/simulate/deposit")
def simulate_deposit(payload: DepositRequest):
    return _deposit(payload, dry_run=True)


@app.post("/api/deposit")
def deposit(payload: DepositRequest):
    _require_confirmation(payload.confirm)
    return _deposit(payload, dry_run=False)


@app.post("/api/simulate/bot-trade")
def simulate_bot_trade(payload: BotTradeRequest):
    return _bot_trade(payload, dry_run=True)


@app.post("/api/bot-trade")
def bot_trade(payload: BotTradeRequest):
    _require_confirmation(payload.confirm)
    return _bot_trade(payload, dry_run=False)


@app.get("/api/attempts")
def attempts():
    return {"attempts": [attempt.to_dict() for attempt in _pipeline().attempts]}


def _deposit(payload: DepositRequest, dry_run: bool) -> dict:
    attempt = _pipeline().deposit(
        payload.amount,
        payload.coin_type,
        balance_manager=payload.balance_manager,
        source_coin=payload.source_coin,
        dry_run=dry_run,
    )
    return _attempt_to_dict(attempt)


def _bot_trade(payload: BotTradeRequest, dry_run: bool) -> dict:
    attempt = _pipeline().bot_trade(
        payload.from_asset,
        payload.to_asset,
        payload.amount,
        slippage=payload.slippage,
        fee_rate=payload.fee_rate,
        balance_manager=payload.balance_manager,
        min_deposit=payload.min_deposit,
        dry_run=dry_run,
    )
    return _attempt_to_dict(attempt)


def _require_confirmation(confirm: bool) -> None:
    if not confirm:
        raise HTTPException(status_code=400, detail="Explicit confirmation required.")


def _attempt_to_dict(attempt: TransactionAttempt) -> dict:
    output = attempt.to_dict()
    output["balance_changes"] = (
        [
            {"owner": change.owner, "coin_type": change.coin_type, "amount": change.amount}
            for change in attempt.clearance.result.balance_changes
        ]
        if attempt.clearance
        else []
    )
    return output


def _pipeline() -> VaultPipeline:
    pipeline = _STATE["pipeline"]
    if pipeline is None:
        pipeline = VaultPipeline.from_config(VaultConfig.from_env())
        _STATE["pipeline"] = pipeline
    return pipeline


def _set_pipeline(pipeline: VaultPipeline) -> None:
    _STATE["pipeline"] = pipeline


def _reset_state() -> None:
    _STATE["pipeline"] = None
