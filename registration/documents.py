"""
registration/documents.py

Document capture for the signature / Aadhaar verification step.

- Accepts exactly one PNG/JPEG image per registration.
- Builds a local preview (thumbnail) that does not depend on the network.
- Locks the original bytes after a successful upload so that the bytes that
  were OCR-verified are the same bytes that get hashed and anchored.
- Computes the content digest once per uploaded buffer.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from registration.errors import DocumentLockedError, ValidationError
from registration.schemas import DocumentSnapshot

logger = logging.getLogger(__name__)

PREVIEW_MAX_SIDE: int = 256
DEFAULT_MAX_BYTES: int = 10 * 1024 * 1024
DEFAULT_DIGEST_ALGORITHM = "sha256"

_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
}


def compute_digest(data: bytes, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> str:
    """Return ``0x``-prefixed hex digest of *data*."""
    h = hashlib.new(algorithm)
    h.update(data)
    return "0x" + h.hexdigest()


def build_preview(data: bytes) -> bytes:
    """
    Decode *data* and return a PNG thumbnail (longest side PREVIEW_MAX_SIDE).

    Raises:
        ValidationError: if the bytes are not a readable image.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            preview = img.convert("RGB") if img.mode not in ("RGB", "L") else img.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Could not read the uploaded file as an image.", fields=["document"]) from exc

    preview.thumbnail((PREVIEW_MAX_SIDE, PREVIEW_MAX_SIDE), Image.LANCZOS)
    out = BytesIO()
    preview.save(out, format="PNG")
    return out.getvalue()


def _sniff_format(data: bytes) -> Optional[str]:
    try:
        with Image.open(BytesIO(data)) as img:
            return img.format
    except (UnidentifiedImageError, OSError):
        return None


class DocumentAsset:
    """The original uploaded bytes plus their (lazily computed, cached) digest."""

    def __init__(self, data: bytes, filename: str, content_type: str) -> None:
        self.data = bytes(data)
        self.filename = filename
        self.content_type = content_type
        self._digest: Optional[str] = None
        self._digest_algorithm: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def digest(self) -> Optional[str]:
        return self._digest

    def fingerprint(self, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> str:
        """Compute the digest on first call; later calls return the cached value."""
        if self._digest is None:
            self._digest = compute_digest(self.data, algorithm)
            self._digest_algorithm = algorithm
            logger.debug("Computed %s digest for %s (%d bytes).", algorithm, self.filename, self.size)
        return self._digest


class DocumentCapture:
    """Holds the one document attached to a registration."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self.max_bytes = max_bytes
        self._asset: Optional[DocumentAsset] = None
        self._preview: Optional[bytes] = None
        self._locked = False

    @property
    def asset(self) -> Optional[DocumentAsset]:
        return self._asset

    @property
    def has_document(self) -> bool:
        return self._asset is not None

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def preview_png(self) -> Optional[bytes]:
        return self._preview

    @property
    def preview_data_url(self) -> Optional[str]:
        if self._preview is None:
            return None
        return "data:image/png;base64," + base64.b64encode(self._preview).decode("ascii")

    def select(self, data: bytes, filename: str, content_type: str | None = None) -> DocumentAsset:
        """
        Attach *data* as the registration's document, replacing any earlier,
        not-yet-uploaded selection.

        Raises:
            DocumentLockedError: once the document has been uploaded.
            ValidationError: empty, oversized or non-image input.
        """
        if self._locked:
            raise DocumentLockedError(
                "The verified document is locked; restart the registration to use another file.",
                fields=["document"],
            )
        if not data:
            raise ValidationError("The selected file is empty.", fields=["document"])
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"The selected file is larger than {self.max_bytes // (1024 * 1024)} MB.",
                fields=["document"],
            )

        fmt = _sniff_format(data)
        if fmt not in _FORMAT_TO_MIME:
            raise ValidationError("Only PNG or JPEG images are accepted.", fields=["document"])

        # Discard the previous selection before building the new preview.
        self._asset = None
        self._preview = None

        preview = build_preview(data)
        self._asset = DocumentAsset(data, filename, content_type or _FORMAT_TO_MIME[fmt])
        self._preview = preview
        logger.info("Document selected: %s (%s, %d bytes).", filename, fmt, len(data))
        return self._asset

    def lock(self, asset: Optional[DocumentAsset] = None) -> None:
        """Lock the capture on *asset* (default: the current selection)."""
        if asset is not None and asset is not self._asset:
            logger.warning("Selection changed during upload; locking on the uploaded %s.", asset.filename)
            self._asset = asset
            self._preview = build_preview(asset.data)
        if self._asset is None:
            raise ValidationError("No document attached.", fields=["document"])
        self._locked = True

    def release(self) -> None:
        """Drop the bytes once the workflow is complete; the digest stays known."""
        if self._asset is not None:
            self._asset.data = b""

    # -----------------------------------------------------------------
    # Checkpoint helpers
    # -----------------------------------------------------------------
    def snapshot(self, include_bytes: bool = True) -> Optional[DocumentSnapshot]:
        if self._asset is None:
            return None
        data_b64 = None
        if include_bytes and self._asset.data:
            data_b64 = base64.b64encode(self._asset.data).decode("ascii")
        return DocumentSnapshot(
            filename=self._asset.filename,
            content_type=self._asset.content_type,
            data_b64=data_b64,
            digest=self._asset.digest,
            locked=self._locked,
        )

    @classmethod
    def restore(cls, snap: Optional[DocumentSnapshot], max_bytes: int = DEFAULT_MAX_BYTES) -> "DocumentCapture":
        capture = cls(max_bytes=max_bytes)
        if snap is None:
            return capture
        data = base64.b64decode(snap.data_b64) if snap.data_b64 else b""
        asset = DocumentAsset(data, snap.filename, snap.content_type)
        asset._digest = snap.digest
        capture._asset = asset
        capture._locked = snap.locked
        if data:
            try:
                capture._preview = build_preview(data)
            except ValidationError:
                logger.warning("Stored document for %s could not be previewed.", snap.filename)
        return capture
