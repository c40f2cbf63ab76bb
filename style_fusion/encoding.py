"""Turn user-selected image files into transportable base64 payloads."""

from __future__ import annotations

import asyncio
import base64
import binascii
import mimetypes
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .errors import EncodingError, ValidationError

__all__ = ["EncodedImage", "UploadedImage", "encode_image", "encode_image_async", "guess_mime_type"]

ImageSource = Union[bytes, bytearray, str, Path, BinaryIO]

_DATA_URI_PREFIX = "data:"


@dataclass(frozen=True)
class EncodedImage:
    """Base64 payload (no scheme prefix) plus its media type."""

    data: str
    mime_type: str

    @classmethod
    def from_bytes(cls, blob: bytes, mime_type: str) -> "EncodedImage":
        return cls(data=base64.b64encode(blob).decode("ascii"), mime_type=mime_type)

    def raw_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise EncodingError("Image payload is not valid base64.") from exc

    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def guess_mime_type(name: str | Path | None) -> Optional[str]:
    if not name:
        return None
    guessed, _ = mimetypes.guess_type(str(name))
    return guessed


def _require_image_type(mime_type: Optional[str]) -> str:
    cleaned = (mime_type or "").split(";", 1)[0].strip().lower()
    if not cleaned.startswith("image/"):
        raise ValidationError(f"Unsupported media type {mime_type!r}; please choose an image file.")
    return cleaned


def _split_data_uri(value: str) -> tuple[Optional[str], str]:
    """Return ``(mime_type, payload)`` from ``data:<mime>;base64,<payload>``."""

    header, sep, payload = value.partition(",")
    if not sep:
        raise EncodingError("Malformed data URI: missing payload separator.")
    meta = header[len(_DATA_URI_PREFIX):]
    mime_type = meta.split(";", 1)[0] or None
    if ";base64" not in meta:
        raise EncodingError("Only base64 data URIs are supported.")
    return mime_type, payload.strip()


def _read_source(source: ImageSource) -> tuple[bytes, Optional[str]]:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source), None
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            return path.read_bytes(), guess_mime_type(path)
        except OSError as exc:
            raise EncodingError(f"Could not read image file {path.name!r}.") from exc
    reader = getattr(source, "read", None)
    if reader is None:
        raise EncodingError(f"Cannot encode object of type {type(source).__name__}.")
    try:
        blob = reader()
    except OSError as exc:
        raise EncodingError("Could not read the uploaded image.") from exc
    if not isinstance(blob, (bytes, bytearray)):
        raise EncodingError("Image stream must be opened in binary mode.")
    return bytes(blob), guess_mime_type(getattr(source, "name", None))


def encode_image(source: ImageSource, mime_type: Optional[str] = None) -> EncodedImage:
    """Encode ``source`` as base64, stripping any data-URI prefix.

    The media type is taken from ``mime_type`` when given, otherwise from the
    data-URI header or the file name.
    """

    if isinstance(source, str) and source.startswith(_DATA_URI_PREFIX):
        header_type, payload = _split_data_uri(source)
        try:
            base64.b64decode(payload, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise EncodingError("Data URI payload is not valid base64.") from exc
        return EncodedImage(data=payload, mime_type=_require_image_type(mime_type or header_type))

    blob, detected = _read_source(source)
    if not blob:
        raise EncodingError("The selected image file is empty.")
    return EncodedImage.from_bytes(blob, _require_image_type(mime_type or detected))


async def encode_image_async(source: ImageSource, mime_type: Optional[str] = None) -> EncodedImage:
    return await asyncio.to_thread(encode_image, source, mime_type)


@dataclass(frozen=True)
class UploadedImage:
    """A user selection; replaced wholesale on re-upload, never mutated."""

    filename: str
    content: bytes
    mime_type: str
    display_url: str

    @classmethod
    def create(
        cls,
        filename: str,
        content: bytes,
        mime_type: Optional[str],
        display_url: str,
    ) -> "UploadedImage":
        resolved = _require_image_type(mime_type or guess_mime_type(filename))
        if not content:
            raise ValidationError(f"The file {filename!r} is empty.")
        return cls(filename=filename, content=content, mime_type=resolved, display_url=display_url)

    @classmethod
    def from_path(cls, path: Path) -> "UploadedImage":
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise EncodingError(f"Could not read image file {path.name!r}.") from exc
        return cls.create(path.name, content, guess_mime_type(path), display_url=path.resolve().as_uri())

    @cached_property
    def encoded(self) -> EncodedImage:
        return encode_image(self.content, self.mime_type)
