import uuid
from pathlib import Path
from typing import Iterable

from config import settings

MAX_IMAGE_SIZE = 4 * 1024 * 1024  # 4MB
ALLOWED_IMAGE_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
}
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}

_MAGIC_SIGNATURES: list[tuple[bytes, str, str]] = [
    (b"\xff\xd8\xff", "image/jpeg", ".jpg"),
    (b"\x89PNG\r\n\x1a\n", "image/png", ".png"),
    (b"GIF87a", "image/gif", ".gif"),
    (b"GIF89a", "image/gif", ".gif"),
]


def sniff_image_format(image_bytes: bytes) -> tuple[str, str] | None:
    head = image_bytes[:16]
    for magic, mime, ext in _MAGIC_SIGNATURES:
        if head.startswith(magic):
            return mime, ext
    if len(head) >= 12 and head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return "image/webp", ".webp"
    return None


def validate_image_payload(
    image_bytes: bytes,
    *,
    content_type: str | None = None,
) -> tuple[str, str]:
    if not image_bytes:
        raise ValueError("Uploaded file is empty.")
    if len(image_bytes) > MAX_IMAGE_SIZE:
        raise ValueError(f"Image too large. Maximum size is {MAX_IMAGE_SIZE // (1024*1024)}MB.")

    sniffed = sniff_image_format(image_bytes)
    if not sniffed:
        raise ValueError("Unsupported image format. Allowed formats: jpg, png, webp, gif.")
    mime, ext = sniffed

    if content_type:
        normalized = content_type.split(";")[0].strip().lower()
        if normalized == "image/jpg":
            normalized = "image/jpeg"
        if normalized not in ALLOWED_IMAGE_MIME_TYPES:
            raise ValueError("Unsupported image content type.")
        # Strict mismatch check blocks disguised payloads.
        if normalized != mime:
            raise ValueError("Image content type does not match the uploaded file signature.")

    return mime, ext


def store_checkin_image(image_bytes: bytes, *, extension: str) -> str:
    """Write an upload under UPLOAD_DIR and return its public reference."""
    ext = (extension or "").strip().lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        ext = ".jpg"
    unique_name = f"{uuid.uuid4().hex}{ext}"
    filepath = Path(settings.UPLOAD_DIR) / unique_name
    filepath.write_bytes(image_bytes)
    prefix = (settings.UPLOAD_URL_PREFIX or "/uploads").rstrip("/")
    return f"{prefix}/{unique_name}"


def normalize_image_refs(image_urls: Iterable[str] | None) -> list[str]:
    """Strip image references and drop blank entries, keeping order."""
    refs: list[str] = []
    for raw in image_urls or []:
        ref = str(raw or "").strip()
        if ref:
            refs.append(ref)
    return refs
