"""Tests for generation session snapshots."""

import pytest

from models.generation_models import ErrorKind, GenerationPhase, GenerationSession
from services.generation.classification import classified_error


class TestGenerationSession:
    def test_terminal_phases(self):
        assert GenerationPhase.SUCCEEDED.is_terminal
        assert GenerationPhase.FAILED.is_terminal
        assert not GenerationPhase.IDLE.is_terminal
        assert not GenerationPhase.GENERATING.is_terminal

    @pytest.mark.parametrize("phase", [GenerationPhase.IDLE, GenerationPhase.GENERATING])
    def test_result_requires_terminal_phase(self, phase):
        with pytest.raises(ValueError):
            GenerationSession(phase=phase, result_ref="https://cdn.example/r.png")

    @pytest.mark.parametrize("phase", [GenerationPhase.IDLE, GenerationPhase.GENERATING])
    def test_error_requires_terminal_phase(self, phase):
        with pytest.raises(ValueError):
            GenerationSession(phase=phase, error=classified_error(ErrorKind.UNKNOWN, "boom"))

    def test_result_and_error_are_exclusive(self):
        with pytest.raises(ValueError):
            GenerationSession(
                phase=GenerationPhase.FAILED,
                result_ref="https://cdn.example/r.png",
                error=classified_error(ErrorKind.UNKNOWN, "boom"),
            )

    def test_to_dict_hides_raw_message(self):
        session = GenerationSession(
            phase=GenerationPhase.FAILED,
            error=classified_error(ErrorKind.CONTENT_REFUSAL, "I will not draw this."),
        )

        data = session.to_dict()

        assert data["phase"] == "failed"
        assert data["error"] == {
            "kind": "content_refusal",
            "user_message": session.error.user_message,
        }
