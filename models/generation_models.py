"""Domain models for the try-on generation lifecycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class QualityTier(str, Enum):
    """Cost/fidelity preset selected by the user."""

    STANDARD = "standard"
    STUDIO = "studio"

    @property
    def inference_steps(self) -> int:
        return 50 if self is QualityTier.STUDIO else 30


class ModelSelector(str, Enum):
    """Backend inference model chosen for a generation."""

    FAL = "fal"
    GEMINI2 = "gemini2"
    GEMINIPRO = "geminipro"


class GarmentCategory(str, Enum):
    TOPS = "tops"
    BOTTOMS = "bottoms"
    ONE_PIECES = "one-pieces"


class GenerationPhase(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationPhase.SUCCEEDED, GenerationPhase.FAILED)


class ErrorKind(str, Enum):
    """Classification of a failed generation attempt."""

    INSUFFICIENT_CREDIT = "insufficient_credit"
    TRANSIENT_BACKEND = "transient_backend"
    CONTENT_REFUSAL = "content_refusal"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.TRANSIENT_BACKEND


@dataclass(frozen=True)
class EncodedImage:
    """Transmittable image payload produced by the normalizer.

    Attributes:
        source_ref: The reference the image was read from.
        mime_type: MIME type of the encoded bytes (always a lossy codec).
        encoded_payload: Base64 text of the encoded image bytes.
    """

    source_ref: str
    mime_type: str
    encoded_payload: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.encoded_payload}"


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable request assembled by the request builder.

    Attributes:
        person_image: Encoded photo of the person.
        garment_image: Encoded photo of the garment.
        quality: Selected quality tier.
        model: Selected model.
        backend_model: Backend identifier resolved from the model policy.
        instructions: Fixed try-on instructions, with the style hint appended.
        style_hint: Optional free-text styling note from the user.
        garment_category: Optional garment category hint.
    """

    person_image: EncodedImage
    garment_image: EncodedImage
    quality: QualityTier
    model: ModelSelector
    backend_model: str
    instructions: str
    style_hint: Optional[str] = None
    garment_category: Optional[GarmentCategory] = None


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    raw_message: str
    user_message: str

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


@dataclass(frozen=True)
class GenerationSuccess:
    result_ref: str


GatewayResult = Union[GenerationSuccess, ClassifiedError]


@dataclass(frozen=True)
class GenerationSession:
    """Snapshot of the orchestrator state.

    `result_ref` and `error` are mutually exclusive and both unset unless
    the phase is terminal.
    """

    phase: GenerationPhase = GenerationPhase.IDLE
    person_image_ref: Optional[str] = None
    garment_image_ref: Optional[str] = None
    style_hint: Optional[str] = None
    result_ref: Optional[str] = None
    error: Optional[ClassifiedError] = None
    request_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.result_ref is not None and self.error is not None:
            raise ValueError("A session cannot hold both a result and an error.")
        if not self.phase.is_terminal and (self.result_ref is not None or self.error is not None):
            raise ValueError(f"Phase {self.phase.value!r} cannot carry a result or an error.")

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable view of the snapshot."""
        data = asdict(self)
        data["phase"] = self.phase.value
        if self.error is not None:
            data["error"] = {
                "kind": self.error.kind.value,
                "user_message": self.error.user_message,
            }
        return data
