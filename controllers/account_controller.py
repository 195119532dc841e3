"""Credit balance and generation history helpers."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from fastapi import HTTPException, Request

from dal.generation_dal import GenerationDAL
from services.credits.credit_ledger import CreditLedger, CreditLedgerError
from services.generation.policy import CreditCostTable


async def get_balance(request: Request) -> Dict[str, Any]:
    """Fetch the current credit balance from the remote ledger."""
    ledger: CreditLedger = getattr(request.app.state, "credit_ledger", None)
    if ledger is None:
        raise HTTPException(status_code=503, detail="Credit ledger is not configured")
    try:
        balance = await ledger.fetch_balance()
    except CreditLedgerError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"balance": balance}


async def estimate_cost(quality: str, model: str) -> Dict[str, Any]:
    try:
        return CreditCostTable().estimate(quality, model)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def list_history(request: Request, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
    """Return settled generations, newest first."""
    db_initializer = getattr(request.app.state, "db_initializer", None)
    if db_initializer is None:
        raise HTTPException(status_code=503, detail="History store is not configured")
    records = await GenerationDAL(db_initializer).list_generations(limit=limit, offset=offset)
    return {"items": [asdict(record) for record in records]}
