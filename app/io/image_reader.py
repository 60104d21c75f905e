"""Prepare uploaded label images for transport to the inference service.

The service receives images inline as base64 data URLs, so all that is
needed here is a trustworthy media type and the encoded payload. Pillow
sniffs the actual format from the bytes because browsers and sample
files often report a generic or wrong content type.
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"


@dataclass
class EncodedImage:
    """Base64 image payload plus its media type.

    Usage:
        encoded = encode_image(raw_bytes, declared_type="image/png")
        encoded.data_url  # "data:image/png;base64,iVBOR..."
    """
    media_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


def detect_media_type(image_bytes: bytes, declared_type: Optional[str] = None) -> str:
    """Sniff the media type with Pillow, falling back to the declared type."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            mime = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        mime = None

    if mime:
        return mime
    if declared_type and declared_type.startswith("image/"):
        logger.debug("Pillow could not identify image; using declared type %s", declared_type)
        return declared_type
    return DEFAULT_MEDIA_TYPE


def encode_image(image_bytes: bytes, declared_type: Optional[str] = None) -> EncodedImage:
    return EncodedImage(
        media_type=detect_media_type(image_bytes, declared_type),
        data=base64.b64encode(image_bytes).decode("utf-8"),
    )
