"""
Media capture for report photos
Turns a picked or camera-captured file into a previewable image
"""

import base64
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import cv2
import numpy as np

from roadwatch.core.errors import MediaError, MediaErrorKind

logger = logging.getLogger(__name__)


class CaptureSource(str, Enum):
    """Where the image came from."""
    FILE_PICKER = "picker"
    CAMERA = "camera"


@dataclass
class CapturedImage:
    """Image selected for a report, kept in memory until upload."""
    raw_bytes: bytes
    preview: str  # data URL for immediate display
    decoded: Any  # BGR pixel array
    filename: str
    content_type: str
    source: CaptureSource = CaptureSource.FILE_PICKER

    @property
    def width(self) -> int:
        return int(self.decoded.shape[1])

    @property
    def height(self) -> int:
        return int(self.decoded.shape[0])

    @property
    def size_bytes(self) -> int:
        return len(self.raw_bytes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without pixel data)."""
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "source": self.source.value,
            "width": self.width,
            "height": self.height,
            "size_bytes": self.size_bytes,
            "preview": self.preview,
        }


def ingest(
    data: bytes,
    filename: str = "photo.jpg",
    content_type: Optional[str] = None,
    source: CaptureSource = CaptureSource.FILE_PICKER
) -> CapturedImage:
    """
    Decode an image payload and build its preview.

    Args:
        data: Image bytes (JPEG, PNG, ...)
        filename: Original filename
        content_type: MIME type reported by the client
        source: File picker or camera capture

    Returns:
        CapturedImage

    Raises:
        MediaError: if the payload cannot be decoded as an image
    """
    if not data:
        raise MediaError(MediaErrorKind.UNSUPPORTED_FORMAT, "The selected file is empty.")

    decoded = _decode(data)
    if decoded is None:
        logger.info(f"Rejected undecodable upload '{filename}' ({len(data)} bytes)")
        raise MediaError(MediaErrorKind.UNSUPPORTED_FORMAT)

    mime = _resolve_content_type(filename, content_type)
    preview = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"

    logger.debug(
        f"Ingested {source.value} image '{filename}' "
        f"{decoded.shape[1]}x{decoded.shape[0]}"
    )

    return CapturedImage(
        raw_bytes=data,
        preview=preview,
        decoded=decoded,
        filename=filename or "photo.jpg",
        content_type=mime,
        source=source,
    )


def _decode(data: bytes):
    """Decode bytes to a pixel array, None if not an image."""
    try:
        buffer = np.frombuffer(data, np.uint8)
        return cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        logger.debug(f"Image decode failed: {e}")
        return None


def _resolve_content_type(filename: str, content_type: Optional[str]) -> str:
    if content_type and content_type.startswith("image/"):
        return content_type
    guessed, _ = mimetypes.guess_type(filename or "")
    if guessed and guessed.startswith("image/"):
        return guessed
    return "image/jpeg"
