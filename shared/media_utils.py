"""
Data-URI and image helpers shared by the story service and the studio.
"""

import base64
import binascii
import io
import re

from PIL import Image

PLACEHOLDER_IMAGE_URL = "https://placehold.co/600x400.png"

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[^;,]+)*),(?P<payload>.*)$", re.DOTALL)

# pydub/ffmpeg format names keyed by audio mime type
AUDIO_FORMATS: dict[str, str] = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/aac": "aac",
    "audio/flac": "flac",
}


def encode_data_uri(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """
    Decode a data URI.

    Returns:
        Tuple of (mime type, payload bytes)

    Raises:
        ValueError: If the URI is not a well-formed data URI
    """
    match = _DATA_URI_PATTERN.match(uri or "")
    if not match:
        raise ValueError("Not a data URI")

    mime_type = match.group("mime") or "text/plain"
    payload = match.group("payload")
    if ";base64" in (match.group("params") or ""):
        try:
            return mime_type, base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return mime_type, payload.encode("utf-8")


def is_data_uri(uri: str | None) -> bool:
    return bool(uri) and uri.startswith("data:")


def is_placeholder_url(url: str | None) -> bool:
    """True for the stand-in image used when an illustration could not be fetched."""
    return bool(url) and "placehold.co" in url


def image_to_data_uri(image: Image.Image, image_format: str = "PNG") -> str:
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return encode_data_uri(buffer.getvalue(), f"image/{image_format.lower()}")


def image_from_data_uri(uri: str) -> Image.Image:
    """Open an image data URI with Pillow, fully loaded into memory."""
    mime_type, payload = decode_data_uri(uri)
    if not mime_type.startswith("image/"):
        raise ValueError(f"Expected an image data URI, got {mime_type}")
    image = Image.open(io.BytesIO(payload))
    image.load()
    return image


def audio_format_for_mime(mime_type: str) -> str | None:
    return AUDIO_FORMATS.get(mime_type.lower())
