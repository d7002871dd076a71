import base64

import pytest

from pairchat.services.errors import ValidationError
from pairchat.utils import attachments
from pairchat.utils.attachments import AttachmentStore, decode_payload


def test_decode_accepts_data_url_and_bare_base64():
    encoded = base64.b64encode(b"hello").decode()

    assert decode_payload(encoded) == b"hello"
    assert decode_payload(f"data:application/octet-stream;base64,{encoded}") == b"hello"


@pytest.mark.parametrize("payload", ["not base64!!", "", "data:text/plain;base64,"])
def test_decode_rejects_bad_payloads(payload):
    with pytest.raises(ValidationError):
        decode_payload(payload)


def test_decode_rejects_oversized_payload(monkeypatch):
    monkeypatch.setattr(attachments, "MAX_ATTACHMENT_BYTES", 4)

    with pytest.raises(ValidationError):
        decode_payload(base64.b64encode(b"too large").decode())


@pytest.mark.asyncio
async def test_store_writes_blob_and_returns_url(tmp_path):
    store = AttachmentStore(root=tmp_path)

    first = await store.save("user1", "photo.JPG", base64.b64encode(b"a").decode())
    second = await store.save("user1", "photo.JPG", base64.b64encode(b"b").decode())

    assert first != second
    for url, body in [(first, b"a"), (second, b"b")]:
        name = url.removeprefix("/uploads/")
        assert name.endswith(".JPG")
        assert "user1" in name
        assert (tmp_path / name).read_bytes() == body
