"""FastAPI routes for credits and generation history."""

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.account_controller import estimate_cost, get_balance, list_history

router = APIRouter()


@router.get("/credits/balance")
async def balance_route(request: Request):
	return await get_balance(request)


@router.get("/credits/estimate")
async def estimate_route(quality: str, model: str):
	return await estimate_cost(quality, model)


@router.get("/generation/history")
async def history_route(request: Request, limit: int = Query(50, ge=1, le=500), offset: int = Query(0, ge=0)):
	try:
		return await list_history(request, limit=limit, offset=offset)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
