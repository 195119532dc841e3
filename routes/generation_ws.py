"""WebSocket endpoint streaming generation session state to UI clients."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from models.generation_models import GenerationSession
from services.generation.session_store import SessionStore

router = APIRouter()


def _require_session_store(websocket: WebSocket) -> SessionStore:
	store = getattr(websocket.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Session store unavailable")
	return store


@router.websocket("/generation/ws/{session_id}")
async def session_socket(websocket: WebSocket, session_id: str, store: SessionStore = Depends(_require_session_store)):
	"""Send the current snapshot, then one message per state change."""
	await websocket.accept()
	try:
		orchestrator = store.get(session_id)
	except KeyError:
		await websocket.send_text(json.dumps({"type": "error", "detail": "Session not found"}))
		await websocket.close()
		return

	queue: "asyncio.Queue[GenerationSession]" = asyncio.Queue()
	unsubscribe = orchestrator.subscribe(queue.put_nowait)
	await queue.put(orchestrator.session)

	async def forward_updates() -> None:
		while True:
			session = await queue.get()
			await websocket.send_text(json.dumps({"type": "session.state", "session_id": session_id, **session.to_dict()}))

	sender = asyncio.create_task(forward_updates())
	try:
		while True:
			# Inbound frames are ignored; receiving detects the disconnect.
			await websocket.receive_text()
	except WebSocketDisconnect:
		pass
	finally:
		unsubscribe()
		sender.cancel()
		try:
			await sender
		except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
			pass
