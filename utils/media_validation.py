"""Validation helpers for uploaded person and garment images."""

import base64
from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
}

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def to_data_uri(image_bytes: bytes, mime_type: str) -> str:
    """Wrap raw image bytes in a base64 data URI."""
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def resolve_image_type(image_file: UploadFile) -> str:
    """Return the MIME type of an uploaded image, rejecting unsupported formats.

    The content type header wins when present; otherwise the filename
    extension must identify a known image format.
    """
    if image_file.content_type and image_file.content_type != "application/octet-stream":
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")
        return "image/jpeg" if content_type == "image/jpg" else content_type

    filename = (image_file.filename or "").lower()
    for ext, mime_type in _EXTENSION_TYPES.items():
        if filename.endswith(ext):
            return mime_type
    raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


async def read_image_upload(image_file: UploadFile) -> str:
    """Read a validated image upload and return it as a data URI."""
    mime_type = resolve_image_type(image_file)
    image_bytes = await image_file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image file is empty.")
    return to_data_uri(image_bytes, mime_type)
