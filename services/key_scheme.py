# services/key_scheme.py
import os
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple
from urllib.parse import urlsplit

from models import ALLOWED_EXTENSIONS
from services.errors import InvalidInput
from utils.sanitize import sanitize_vin

DEFAULT_BASE_URL = "https://inventory.blob.core.windows.net/invpics/units/"
DEFAULT_CONTAINER = "invpics"
DEFAULT_PREFIX = "units/"
STAGING_MARKER = "tmp_"
PLACEHOLDER_NAME = ".keep"

_EXT_GROUP = "|".join(ALLOWED_EXTENSIONS)


def get_image_base_url() -> str:
    base = (
        os.environ.get("IMGBaseURL")
        or os.environ.get("NEXT_PUBLIC_IMG_BASE_URL")
        or DEFAULT_BASE_URL
    )
    return base if base.endswith("/") else base + "/"


def parse_base_url(base_url) -> Tuple[str, str]:
    """
    https://acct.blob.core.windows.net/invpics/units/ -> ("invpics", "units/")

    Never raises: anything that does not look like an absolute URL falls back
    to the default container and prefix.
    """
    try:
        parts = urlsplit(base_url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(base_url)
    except (TypeError, ValueError, AttributeError):
        return DEFAULT_CONTAINER, DEFAULT_PREFIX

    segments = [s for s in parts.path.split("/") if s]
    container = segments[0] if segments else DEFAULT_CONTAINER
    rest = segments[1:]
    prefix = "/".join(rest) + "/" if rest else ""
    return container, prefix


def sanitize_entity_id(raw) -> str:
    entity_id = sanitize_vin(raw)
    if not entity_id:
        raise InvalidInput("VIN is required")
    return entity_id


def normalize_extension(ext) -> str:
    value = str(ext or "").strip().lstrip(".").lower()
    if value not in ALLOWED_EXTENSIONS:
        raise InvalidInput(f"Unsupported image extension: {ext!r}")
    return value


def extension_from_mime(mime: Optional[str]) -> str:
    if not mime:
        return "png"
    mime = mime.lower()
    if "jpeg" in mime or "jpg" in mime:
        return "jpg"
    for ext in ("png", "webp", "gif"):
        if ext in mime:
            return ext
    return "png"


def extension_for_upload(filename: Optional[str], mime: Optional[str]) -> str:
    """Filename extension wins; the MIME type is only consulted when there is none."""
    if filename and "." in filename:
        return normalize_extension(filename.rsplit(".", 1)[1])
    return extension_from_mime(mime)


@dataclass(frozen=True)
class KeyScheme:
    base_url: str
    container: str
    prefix: str

    @classmethod
    def from_env(cls) -> "KeyScheme":
        base_url = get_image_base_url()
        container, prefix = parse_base_url(base_url)
        container = os.environ.get("AZURE_STORAGE_CONTAINER") or container
        return cls(base_url=base_url, container=container, prefix=prefix)

    @classmethod
    def from_base_url(cls, base_url: str) -> "KeyScheme":
        container, prefix = parse_base_url(base_url)
        if not base_url.endswith("/"):
            base_url += "/"
        return cls(base_url=base_url, container=container, prefix=prefix)

    def entity_prefix(self, entity_id: str) -> str:
        return f"{self.prefix}{entity_id}/"

    def build_key(self, entity_id: str, sequence: int, ext: str) -> str:
        return f"{self.prefix}{entity_id}/{sequence}.{ext}"

    def staging_key(self, entity_id: str, sequence: int, ext: str) -> str:
        return f"{self.prefix}{entity_id}/{STAGING_MARKER}{sequence}.{ext}"

    def placeholder_key(self, entity_id: str) -> str:
        return f"{self.prefix}{entity_id}/{PLACEHOLDER_NAME}"

    def public_url(self, entity_id: str, sequence: int, ext: str) -> str:
        return f"{self.base_url.rstrip('/')}/{entity_id}/{sequence}.{ext}"

    def match_pattern(self, entity_id: str) -> Pattern[str]:
        return re.compile(
            rf"^{re.escape(self.entity_prefix(entity_id))}(\d+)\.({_EXT_GROUP})$",
            re.IGNORECASE,
        )

    def staging_pattern(self, entity_id: str) -> Pattern[str]:
        return re.compile(
            rf"^{re.escape(self.entity_prefix(entity_id))}{STAGING_MARKER}(\d+)\.({_EXT_GROUP})$",
            re.IGNORECASE,
        )
