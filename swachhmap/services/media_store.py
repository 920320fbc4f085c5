"""Report image storage on DigitalOcean Spaces."""
from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import re
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import cast
from urllib.parse import urlparse

from boto3.session import Session
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool
from PIL import Image, UnidentifiedImageError

from ..config import get_settings
from ..security.secrets import MissingSecretError, is_placeholder, require_secret

logger = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.+-]+)*;base64,(?P<data>.*)$", re.DOTALL)

# Pillow format name -> (content type, file extension)
_OUTPUT_FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("image/jpeg", ".jpg"),
    "PNG": ("image/png", ".png"),
    "WEBP": ("image/webp", ".webp"),
    "GIF": ("image/gif", ".gif"),
}


@dataclass(frozen=True)
class SpacesConfig:
    """Runtime configuration extracted from environment variables."""

    key: str
    secret: str
    region: str
    bucket: str
    api_endpoint: str
    public_endpoint: str


@dataclass(frozen=True)
class StoredImage:
    """Public URL plus the object key needed to remove the image later."""

    url: str
    reference: str


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    content_type: str
    extension: str
    width: int
    height: int


class MediaStoreConfigurationError(RuntimeError):
    """Raised when required DigitalOcean Spaces settings are missing or invalid."""


class MediaUploadError(RuntimeError):
    """Raised when an image cannot be decoded or stored."""


class MediaNotFoundError(RuntimeError):
    """Raised when removing an image that storage does not hold."""


class MediaDeletionError(RuntimeError):
    """Raised when deleting an object from storage fails."""


@lru_cache(maxsize=1)
def load_spaces_config() -> SpacesConfig:
    """Read and validate DigitalOcean Spaces configuration from the environment."""

    required: dict[str, str | None] = {
        "DO_SPACES_KEY": os.getenv("DO_SPACES_KEY"),
        "DO_SPACES_SECRET": os.getenv("DO_SPACES_SECRET"),
        "DO_SPACES_REGION": os.getenv("DO_SPACES_REGION"),
        "DO_SPACES_NAME": os.getenv("DO_SPACES_NAME"),
        "DO_SPACES_ENDPOINT": os.getenv("DO_SPACES_ENDPOINT"),
    }

    missing = [name for name, value in required.items() if is_placeholder(value)]
    if missing:
        raise MediaStoreConfigurationError(
            "Image storage is not configured; missing " + ", ".join(sorted(missing))
        )

    try:
        key = require_secret("DO_SPACES_KEY")
        secret = require_secret("DO_SPACES_SECRET")
    except MissingSecretError as exc:
        raise MediaStoreConfigurationError(str(exc)) from exc

    region = cast(str, required["DO_SPACES_REGION"]).strip()
    bucket = cast(str, required["DO_SPACES_NAME"]).strip()
    public_endpoint = cast(str, required["DO_SPACES_ENDPOINT"]).strip().rstrip("/")

    parsed = urlparse(public_endpoint)
    if not parsed.scheme:
        parsed = urlparse(f"https://{public_endpoint.lstrip(':/')}")
    if not (parsed.netloc or parsed.path):
        raise MediaStoreConfigurationError("DO_SPACES_ENDPOINT must include a hostname.")

    return SpacesConfig(
        key=key,
        secret=secret,
        region=region,
        bucket=bucket,
        api_endpoint=f"https://{region}.digitaloceanspaces.com",
        public_endpoint=parsed.geturl().rstrip("/"),
    )


@lru_cache(maxsize=1)
def get_spaces_client() -> BaseClient:
    """Create a singleton boto3 client for Spaces interactions."""

    config = load_spaces_config()
    session = Session()
    return session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.api_endpoint,
        aws_access_key_id=config.key,
        aws_secret_access_key=config.secret,
    )


def decode_image_payload(image: str | bytes) -> bytes:
    """Turn a data URL, bare base64 text or raw bytes into image bytes."""

    if isinstance(image, (bytes, bytearray)):
        data = bytes(image)
    else:
        text = (image or "").strip()
        match = _DATA_URL_PATTERN.match(text)
        if match:
            text = match.group("data")
        try:
            data = base64.b64decode(re.sub(r"\s+", "", text), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MediaUploadError("Image payload is not valid base64") from exc

    if not data:
        raise MediaUploadError("Image payload is empty")
    return data


def constrain_image(data: bytes) -> PreparedImage:
    """Shrink ``data`` to fit the configured bounds without ever upscaling."""

    settings = get_settings()
    bounds = (settings.media_max_width, settings.media_max_height)
    try:
        with Image.open(io.BytesIO(data)) as source:
            source_format = (source.format or "").upper()
            image = source.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise MediaUploadError("Image payload is not a supported image") from exc

    image.thumbnail(bounds)

    output_format = source_format if source_format in _OUTPUT_FORMATS else "JPEG"
    if output_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    buffer = io.BytesIO()
    save_options: dict[str, object] = {"optimize": True}
    if output_format in ("JPEG", "WEBP"):
        save_options["quality"] = settings.media_jpeg_quality
    image.save(buffer, format=output_format, **save_options)

    content_type, extension = _OUTPUT_FORMATS[output_format]
    return PreparedImage(
        data=buffer.getvalue(),
        content_type=content_type,
        extension=extension,
        width=image.width,
        height=image.height,
    )


def _object_key(extension: str) -> str:
    folder = get_settings().media_folder.strip("/") or "swachhmap"
    return f"{folder}/{uuid.uuid4().hex}{extension}"


def build_public_url(key: str) -> str:
    """Build the public URL for an object stored in DigitalOcean Spaces."""

    config = load_spaces_config()
    return f"{config.public_endpoint}/{key.lstrip('/')}"


async def store_image(image: str | bytes, *, client: BaseClient | None = None) -> StoredImage:
    """Resize and upload one image, returning its public URL and object key."""

    config = load_spaces_config()
    s3_client = client or get_spaces_client()

    def _upload() -> str:
        prepared = constrain_image(decode_image_payload(image))
        key = _object_key(prepared.extension)
        try:
            s3_client.put_object(
                Bucket=config.bucket,
                Key=key,
                Body=prepared.data,
                ACL="public-read",
                ContentType=prepared.content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Upload to DigitalOcean Spaces failed: %s", exc)
            raise MediaUploadError("Upload to image storage failed") from exc
        return key

    key = await run_in_threadpool(_upload)
    return StoredImage(url=build_public_url(key), reference=key)


async def remove_image(reference: str, *, client: BaseClient | None = None) -> None:
    """Delete the object stored under ``reference``."""

    if not reference or not reference.strip():
        raise MediaNotFoundError("Image reference is required")

    config = load_spaces_config()
    s3_client = client or get_spaces_client()
    key = reference.strip().lstrip("/")

    def _delete() -> None:
        try:
            s3_client.head_object(Bucket=config.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                raise MediaNotFoundError(f"Image {key} does not exist") from exc
            raise MediaDeletionError("Unable to delete image from storage") from exc
        except BotoCoreError as exc:
            raise MediaDeletionError("Unable to delete image from storage") from exc

        try:
            s3_client.delete_object(Bucket=config.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Failed to delete Spaces object %s", key)
            raise MediaDeletionError("Unable to delete image from storage") from exc

    await run_in_threadpool(_delete)


__all__ = [
    "SpacesConfig",
    "StoredImage",
    "PreparedImage",
    "MediaStoreConfigurationError",
    "MediaUploadError",
    "MediaNotFoundError",
    "MediaDeletionError",
    "load_spaces_config",
    "get_spaces_client",
    "decode_image_payload",
    "constrain_image",
    "build_public_url",
    "store_image",
    "remove_image",
]
