"""
Helpers for ad filenames of the form ``BRAND_GROUP_RECIPE[_ASPECT][_V2].ext``.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_VERSION_PART_RE = re.compile(r"^V(\d+)", re.IGNORECASE)
_LOOSE_VERSION_RE = re.compile(r"(?:^|[_-])v(\d+)", re.IGNORECASE)
_VERSION_SUFFIX_RE = re.compile(r"[_-]v\d+$", re.IGNORECASE)


@dataclass
class AdFilename:
    brand_code: str = ""
    ad_group_code: str = ""
    recipe_code: str = ""
    aspect_ratio: str = ""
    version: Optional[int] = None


def split_extension(filename: str):
    match = _EXTENSION_RE.search(filename or "")
    if not match:
        return filename or "", ""
    return filename[:match.start()], match.group(0)


def parse_ad_filename(filename: Optional[str]) -> AdFilename:
    if not filename:
        return AdFilename()

    name, _ = split_extension(filename)
    parts = name.split("_")

    info = AdFilename(
        brand_code=parts[0] if len(parts) > 0 else "",
        ad_group_code=parts[1] if len(parts) > 1 else "",
        recipe_code=parts[2] if len(parts) > 2 else "",
    )

    if len(parts) >= 5:
        info.aspect_ratio = parts[3]
        match = _VERSION_PART_RE.match(parts[4])
        if match:
            info.version = int(match.group(1))
    elif len(parts) == 4:
        match = _VERSION_PART_RE.match(parts[3])
        if match:
            info.version = int(match.group(1))
        else:
            info.aspect_ratio = parts[3]

    return info


def _version_from_string(value: str) -> int:
    if not value:
        return 1
    parsed = parse_ad_filename(value).version
    if parsed:
        return parsed
    match = _LOOSE_VERSION_RE.search(value)
    if match:
        return int(match.group(1))
    return 1


def get_version(asset_or_name: Any) -> int:
    """Version of an asset, falling back to its filename, defaulting to 1."""
    if not asset_or_name:
        return 1
    if isinstance(asset_or_name, str):
        return _version_from_string(asset_or_name)
    if isinstance(asset_or_name, Mapping):
        explicit = asset_or_name.get("version")
        try:
            if explicit and int(explicit) > 0:
                return int(explicit)
        except (TypeError, ValueError):
            pass
        return _version_from_string(asset_or_name.get("filename") or "")
    return 1


def strip_version(filename: str) -> str:
    """Drop a trailing ``_vN`` marker, keeping the extension."""
    name, ext = split_extension(filename or "")
    return _VERSION_SUFFIX_RE.sub("", name) + ext
