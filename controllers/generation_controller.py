"""Session helpers behind the generation routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from models.generation_models import GarmentCategory, ModelSelector, QualityTier
from services.generation.orchestrator import GenerationOrchestrator
from services.generation.session_store import SessionStore
from utils.media_validation import read_image_upload

IMAGE_ROLES = ("person", "garment")


def _store(request: Request) -> SessionStore:
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Session store unavailable")
    return store


def _orchestrator(request: Request, session_id: str) -> GenerationOrchestrator:
    try:
        return _store(request).get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _session_payload(session_id: str, orchestrator: GenerationOrchestrator) -> Dict[str, Any]:
    payload = orchestrator.session.to_dict()
    payload["session_id"] = session_id
    return payload


async def start_session(request: Request) -> Dict[str, Any]:
    """Create a new generation session and return its initial state."""
    store = _store(request)
    session_id = store.create()
    return _session_payload(session_id, store.get(session_id))


async def get_session(request: Request, session_id: str) -> Dict[str, Any]:
    return _session_payload(session_id, _orchestrator(request, session_id))


async def set_image(request: Request, session_id: str, role: str, source_ref: Optional[str]) -> Dict[str, Any]:
    """Select the person or garment image by reference."""
    orchestrator = _orchestrator(request, session_id)
    if role == "person":
        orchestrator.set_person_image(source_ref)
    elif role == "garment":
        orchestrator.set_garment_image(source_ref)
    else:
        raise HTTPException(status_code=404, detail=f"Unknown image role: {role}")
    return _session_payload(session_id, orchestrator)


async def upload_image(request: Request, session_id: str, role: str, file: UploadFile) -> Dict[str, Any]:
    """Select the person or garment image from an uploaded file."""
    if role not in IMAGE_ROLES:
        raise HTTPException(status_code=404, detail=f"Unknown image role: {role}")
    _orchestrator(request, session_id)
    data_uri = await read_image_upload(file)
    return await set_image(request, session_id, role, data_uri)


async def set_style_hint(request: Request, session_id: str, style_hint: Optional[str]) -> Dict[str, Any]:
    orchestrator = _orchestrator(request, session_id)
    orchestrator.set_style_hint(style_hint)
    return _session_payload(session_id, orchestrator)


async def generate(
    request: Request,
    session_id: str,
    quality: QualityTier,
    model: ModelSelector,
    category: Optional[GarmentCategory] = None,
) -> Dict[str, Any]:
    """Run a generation and return the settled session state.

    Generation failures are part of the returned state, not HTTP errors.
    """
    orchestrator = _orchestrator(request, session_id)
    await orchestrator.generate(quality, model, category)
    return _session_payload(session_id, orchestrator)


async def reset_session(request: Request, session_id: str) -> Dict[str, Any]:
    orchestrator = _orchestrator(request, session_id)
    orchestrator.reset()
    return _session_payload(session_id, orchestrator)


async def close_session(request: Request, session_id: str) -> Dict[str, Any]:
    try:
        _store(request).close(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"session_id": session_id, "closed": True}
