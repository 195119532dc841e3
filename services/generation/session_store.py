"""Simple in-memory registry of generation sessions."""

from __future__ import annotations

from typing import Callable, Dict
from uuid import uuid4

from services.generation.orchestrator import GenerationOrchestrator


class SessionStore:
	"""Create and look up one orchestrator per UI session."""

	def __init__(self, factory: Callable[[], GenerationOrchestrator]) -> None:
		self._factory = factory
		self._sessions: Dict[str, GenerationOrchestrator] = {}

	def create(self) -> str:
		"""Create a new session and return its id."""
		session_id = uuid4().hex
		self._sessions[session_id] = self._factory()
		return session_id

	def get(self, session_id: str) -> GenerationOrchestrator:
		"""Return a session orchestrator or raise KeyError if missing."""
		orchestrator = self._sessions.get(session_id)
		if orchestrator is None:
			raise KeyError(f"Session {session_id} not found")
		return orchestrator

	def close(self, session_id: str) -> None:
		"""Drop a session. Outcomes still in flight settle on the detached orchestrator."""
		self.get(session_id)
		del self._sessions[session_id]

	def __len__(self) -> int:
		return len(self._sessions)
