"""Classify backend replies into successes or user-facing errors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from models.generation_models import ClassifiedError, ErrorKind, GatewayResult, GenerationSuccess

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})
TRANSIENT_ERROR_CODES = frozenset({"SERVICE_UNAVAILABLE", "GENERATION_TIMEOUT", "NETWORK_ERROR"})
INVALID_INPUT_STATUS_CODES = frozenset({400, 422})
INVALID_INPUT_ERROR_CODES = frozenset({"INVALID_INPUT", "INVALID_IMAGE"})
INSUFFICIENT_CREDIT_CODE = "INSUFFICIENT_CREDITS"
CONTENT_REFUSAL_CODES = frozenset({"CONTENT_REFUSAL", "CONTENT_POLICY_VIOLATION", "MODERATION_BLOCKED"})

USER_MESSAGES = {
    ErrorKind.INSUFFICIENT_CREDIT: "You don't have enough credits. Purchase more to continue.",
    ErrorKind.CONTENT_REFUSAL: "We couldn't process these images. Try a different photo or garment.",
    ErrorKind.INVALID_INPUT: "Please select both a person and a garment image.",
    ErrorKind.TRANSIENT_BACKEND: "Failed to generate try-on. Please try again.",
    ErrorKind.UNKNOWN: "Failed to generate try-on. Please try again.",
}
UNREADABLE_IMAGE_MESSAGE = "We couldn't read one of your images. Please choose a different photo."
UNSUPPORTED_OPTION_MESSAGE = "This quality or model option is not available. Please choose another."


@dataclass(frozen=True)
class BackendReply:
    """Transport-neutral view of one backend exchange.

    Attributes:
        status_code: HTTP-equivalent status, or None for transport failures.
        image_ref: Result image URL or data URI, when one was produced.
        text: Explanatory text returned instead of an image.
        error_code: Machine-readable error code from the backend envelope.
        error_message: Human-readable error detail from the backend or transport.
        transport_failure: True when the exchange failed before a response arrived.
    """

    status_code: Optional[int] = None
    image_ref: Optional[str] = None
    text: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    transport_failure: bool = False

    @property
    def ok_status(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


def classified_error(kind: ErrorKind, raw_message: str, user_message: Optional[str] = None) -> ClassifiedError:
    """Build a ClassifiedError with the standard user message for `kind`."""
    return ClassifiedError(
        kind=kind,
        raw_message=raw_message or kind.value,
        user_message=user_message or USER_MESSAGES[kind],
    )


def classify_reply(reply: BackendReply) -> GatewayResult:
    """Map a backend reply onto a success or a classified error.

    Rules, first match wins:
        1. an image payload is a success
        2. an explicit insufficient-balance signal is InsufficientCredit
        3. a refusal code, or explanatory text on a 2xx reply with no
           transient or malformed-input code, is ContentRefusal
        4. a signal in the transient set is TransientBackend
        5. a malformed-input signal is InvalidInput
        6. anything else is Unknown
    """
    code = str(reply.error_code or "").upper()
    message = str(reply.error_message or "")

    if reply.image_ref:
        return GenerationSuccess(result_ref=reply.image_ref)

    if reply.status_code == 402 or code == INSUFFICIENT_CREDIT_CODE or INSUFFICIENT_CREDIT_CODE in message:
        return classified_error(ErrorKind.INSUFFICIENT_CREDIT, message or INSUFFICIENT_CREDIT_CODE)

    if code in CONTENT_REFUSAL_CODES:
        return classified_error(ErrorKind.CONTENT_REFUSAL, reply.text or message or code)
    signalled = code in TRANSIENT_ERROR_CODES or code in INVALID_INPUT_ERROR_CODES
    settled = reply.status_code is None or reply.ok_status
    if reply.text and settled and not signalled and not reply.transport_failure:
        return classified_error(ErrorKind.CONTENT_REFUSAL, reply.text)

    raw = _raw_detail(reply)
    if reply.transport_failure or reply.status_code in TRANSIENT_STATUS_CODES or code in TRANSIENT_ERROR_CODES:
        return classified_error(ErrorKind.TRANSIENT_BACKEND, raw)

    if reply.status_code in INVALID_INPUT_STATUS_CODES or code in INVALID_INPUT_ERROR_CODES:
        return classified_error(ErrorKind.INVALID_INPUT, raw, UNREADABLE_IMAGE_MESSAGE)

    return classified_error(ErrorKind.UNKNOWN, raw)


def _raw_detail(reply: BackendReply) -> str:
    parts = []
    if reply.status_code is not None:
        parts.append(f"status={reply.status_code}")
    if reply.error_code:
        parts.append(f"code={reply.error_code}")
    if reply.error_message:
        parts.append(str(reply.error_message))
    elif reply.text:
        parts.append(str(reply.text))
    return " ".join(parts) if parts else "No image in response"
