import asyncio
import base64
import binascii
import os
import time
import uuid
from pathlib import Path

from pairchat.services.errors import ValidationError


UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", "uploads"))
UPLOADS_URL_PREFIX = "/uploads"
# matches the 1e7-byte frame cap of the browser client
MAX_ATTACHMENT_BYTES = 10_000_000


def decode_payload(payload: str) -> bytes:
    # accepts bare base64 or a "data:<mime>;base64,<data>" URL
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Attachment is not valid base64") from exc
    if not data:
        raise ValidationError("Attachment is empty")
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise ValidationError("Attachment too large")
    return data


class AttachmentStore:
    """Blob sink writing attachments to a directory served as ``/uploads``."""

    def __init__(self, root: Path = UPLOADS_DIR, url_prefix: str = UPLOADS_URL_PREFIX) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    async def save(self, owner_id: str, name: str, payload: str) -> str:
        data = decode_payload(payload)
        suffix = Path(name or "").suffix
        unique_name = f"{int(time.time() * 1000)}-{owner_id}-{uuid.uuid4().hex[:8]}{suffix}"
        await asyncio.to_thread(self._write, unique_name, data)
        return f"{self.url_prefix}/{unique_name}"

    def _write(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_bytes(data)
