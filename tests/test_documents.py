import hashlib

import pytest

from registration import documents
from registration.documents import DocumentCapture, compute_digest
from registration.errors import DocumentLockedError, ValidationError


def test_compute_digest_is_prefixed_hex(png_bytes):
    assert compute_digest(png_bytes) == "0x" + hashlib.sha256(png_bytes).hexdigest()
    assert compute_digest(png_bytes, "sha512") == "0x" + hashlib.sha512(png_bytes).hexdigest()


def test_select_png_builds_preview(png_bytes):
    capture = DocumentCapture()
    asset = capture.select(png_bytes, "signature.png")
    assert asset.content_type == "image/png"
    assert capture.has_document
    assert capture.preview_png.startswith(b"\x89PNG")
    assert capture.preview_data_url.startswith("data:image/png;base64,")


def test_select_jpeg(jpeg_bytes):
    asset = DocumentCapture().select(jpeg_bytes, "aadhaar.jpg")
    assert asset.content_type == "image/jpeg"


@pytest.mark.parametrize(
    "data, message",
    [
        (b"", "empty"),
        (b"%PDF-1.4 not an image", "PNG or JPEG"),
    ],
)
def test_select_rejects_bad_input(data, message):
    capture = DocumentCapture()
    with pytest.raises(ValidationError, match=message):
        capture.select(data, "file.bin")
    assert not capture.has_document


def test_select_rejects_oversized(png_bytes):
    with pytest.raises(ValidationError, match="larger than"):
        DocumentCapture(max_bytes=16).select(png_bytes, "signature.png")


def test_new_selection_replaces_old(png_bytes, other_png_bytes):
    capture = DocumentCapture()
    capture.select(png_bytes, "first.png")
    capture.select(other_png_bytes, "second.png")
    assert capture.asset.filename == "second.png"
    assert capture.asset.data == other_png_bytes


def test_locked_document_cannot_be_replaced(png_bytes, other_png_bytes):
    capture = DocumentCapture()
    capture.select(png_bytes, "first.png")
    capture.lock()
    with pytest.raises(DocumentLockedError):
        capture.select(other_png_bytes, "second.png")
    assert capture.asset.data == png_bytes


def test_lock_pins_the_given_asset(png_bytes, other_png_bytes):
    capture = DocumentCapture()
    sent = capture.select(png_bytes, "first.png")
    capture.select(other_png_bytes, "second.png")
    capture.lock(sent)
    assert capture.locked
    assert capture.asset is sent
    assert capture.asset.data == png_bytes


def test_fingerprint_is_computed_once(png_bytes, monkeypatch):
    calls = []
    real = documents.compute_digest

    def counting(data, algorithm="sha256"):
        calls.append(algorithm)
        return real(data, algorithm)

    monkeypatch.setattr(documents, "compute_digest", counting)
    asset = DocumentCapture().select(png_bytes, "signature.png")
    assert asset.digest is None
    first = asset.fingerprint()
    second = asset.fingerprint()
    assert first == second == real(png_bytes)
    assert calls == ["sha256"]


def test_snapshot_and_restore(png_bytes):
    capture = DocumentCapture()
    capture.select(png_bytes, "signature.png").fingerprint()
    capture.lock()

    restored = DocumentCapture.restore(capture.snapshot())
    assert restored.locked
    assert restored.asset.data == png_bytes
    assert restored.asset.digest == capture.asset.digest
    assert restored.preview_png is not None


def test_release_keeps_digest(png_bytes):
    capture = DocumentCapture()
    digest = capture.select(png_bytes, "signature.png").fingerprint()
    capture.release()
    snap = capture.snapshot()
    assert snap.data_b64 is None
    assert snap.digest == digest
