"""Helpers to turn raw backend responses into `BackendReply` values."""

from typing import Any, Dict, Optional

from services.generation.classification import BackendReply


def extract_generated_image(response: Any) -> Optional[str]:
    """Return the first generated image in a Responses API result as a data URI."""
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "image_generation_call":
            continue
        result = getattr(item, "result", None)
        if result:
            return f"data:image/png;base64,{result}"
    return None


def extract_text(response: Any) -> str:
    """Concatenate every output_text entry from a Responses API result."""
    chunks = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                chunks.append(getattr(content, "text", "") or "")
    if chunks:
        return "".join(chunks)
    return getattr(response, "output_text", "") or ""


def parse_responses_output(response: Any) -> BackendReply:
    """Build a reply from an OpenAI Responses API result."""
    image_ref = extract_generated_image(response)
    if image_ref:
        return BackendReply(status_code=200, image_ref=image_ref)
    return BackendReply(status_code=200, text=extract_text(response).strip() or None)


def parse_backend_envelope(status_code: int, payload: Optional[Dict[str, Any]], body_text: str = "") -> BackendReply:
    """Build a reply from the HTTP generation backend's JSON envelope.

    Successful envelopes look like ``{"success": true, "resultUrl": "..."}``;
    failures carry ``error`` and ``code`` and refusals carry ``text``.
    """
    if not isinstance(payload, dict):
        return BackendReply(
            status_code=status_code,
            error_message=body_text[:500] if body_text else "Backend response was not JSON.",
        )

    result_url = payload.get("resultUrl") or payload.get("result_url")
    if payload.get("success") and result_url:
        return BackendReply(status_code=status_code, image_ref=result_url)

    error = payload.get("error")
    if isinstance(error, dict):
        error_message = error.get("message")
        error_code = error.get("code") or payload.get("code")
    else:
        error_message = error
        error_code = payload.get("code")

    text = payload.get("text")
    if not error_message and not error_code and not text and 200 <= status_code < 300:
        error_message = "No image in response"

    return BackendReply(
        status_code=status_code,
        text=_as_text(text),
        error_code=_as_text(error_code),
        error_message=_as_text(error_message),
    )


def _as_text(value: Any) -> Optional[str]:
    """Return `value` as a string, keeping None."""
    return None if value is None else str(value)
