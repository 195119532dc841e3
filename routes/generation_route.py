"""FastAPI routes for try-on generation sessions."""

from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.generation_controller import (
	close_session,
	generate,
	get_session,
	reset_session,
	set_image,
	set_style_hint,
	start_session,
	upload_image,
)
from models.generation_models import GarmentCategory, ModelSelector, QualityTier

router = APIRouter(prefix="/generation/sessions")


class ImagePayload(BaseModel):
	source_ref: Optional[str] = None


class StyleHintPayload(BaseModel):
	style_hint: Optional[str] = None


class GeneratePayload(BaseModel):
	quality: QualityTier = QualityTier.STANDARD
	model: ModelSelector = ModelSelector.GEMINI2
	category: Optional[GarmentCategory] = None


@router.post("")
async def start_session_route(request: Request):
	try:
		return await start_session(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}")
async def get_session_route(request: Request, session_id: str):
	return await get_session(request, session_id)


@router.put("/{session_id}/style-hint")
async def style_hint_route(request: Request, session_id: str, payload: StyleHintPayload):
	return await set_style_hint(request, session_id, payload.style_hint)


@router.put("/{session_id}/{role}")
async def set_image_route(request: Request, session_id: str, role: str, payload: ImagePayload):
	return await set_image(request, session_id, role, payload.source_ref)


@router.post("/{session_id}/{role}/upload")
async def upload_image_route(request: Request, session_id: str, role: str, file: UploadFile = File(...)):
	try:
		return await upload_image(request, session_id, role, file)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/generate")
async def generate_route(request: Request, session_id: str, payload: GeneratePayload):
	try:
		return await generate(request, session_id, payload.quality, payload.model, payload.category)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/reset")
async def reset_route(request: Request, session_id: str):
	return await reset_session(request, session_id)


@router.delete("/{session_id}")
async def close_session_route(request: Request, session_id: str):
	return await close_session(request, session_id)
