"""Vehicle and local-package identifier normalization.

Raw identifiers arrive from forms, URLs and fare records in many spellings
("Innova Crysta", "innova_crysta", "MPV", "8hr_80km", "08hrs-80km"). Every
cache key and every package lookup goes through these functions first.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_ID = "8hrs-80km"

_NON_KEY_CHARS = re.compile(r"[^a-z0-9_]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class LocalPackage:
    package_id: str
    hours: int
    km: int
    display_name: str


LOCAL_PACKAGES: dict[str, LocalPackage] = {
    "4hrs-40km": LocalPackage("4hrs-40km", 4, 40, "4 Hours / 40 KM"),
    "8hrs-80km": LocalPackage("8hrs-80km", 8, 80, "8 Hours / 80 KM"),
    "10hrs-100km": LocalPackage("10hrs-100km", 10, 100, "10 Hours / 100 KM"),
}

_PACKAGE_ALIASES: dict[str, str] = {
    "4hr_40km": "4hrs-40km",
    "04hr_40km": "4hrs-40km",
    "04hrs_40km": "4hrs-40km",
    "4hrs_40km": "4hrs-40km",
    "4hours_40km": "4hrs-40km",
    "8hr_80km": "8hrs-80km",
    "08hr_80km": "8hrs-80km",
    "8hrs_80km": "8hrs-80km",
    "8hours_80km": "8hrs-80km",
    "10hr_100km": "10hrs-100km",
    "10hrs_100km": "10hrs-100km",
    "10hours_100km": "10hrs-100km",
}


def normalize_vehicle_id(vehicle_id: str) -> str:
    """Map any spelling of a vehicle class to its canonical cache key."""
    normalized = (vehicle_id or "").strip().lower()
    if not normalized:
        raise ValueError("vehicle_id must not be empty")

    if normalized == "mpv" or any(
        marker in normalized for marker in ("hycross", "hi-cross", "hi_cross", "hi cross")
    ):
        return "innova_hycross"
    if "crysta" in normalized or "innova" in normalized:
        return "innova_crysta"
    if "tempo" in normalized:
        return "tempo_traveller"
    if "dzire" in normalized or "cng" in normalized:
        return "dzire_cng"

    result = _NON_KEY_CHARS.sub("", _WHITESPACE.sub("_", normalized))
    if not result:
        raise ValueError(f"vehicle_id {vehicle_id!r} has no usable characters")
    if result != vehicle_id:
        logger.debug(f"Normalized vehicle id {vehicle_id!r} to {result!r}")
    return result


def normalize_package_id(package_id: str | None) -> str:
    """Map any spelling of a local package to one of LOCAL_PACKAGES."""
    if not package_id or not package_id.strip():
        return DEFAULT_PACKAGE_ID

    raw = package_id.strip().lower()
    if raw in LOCAL_PACKAGES:
        return raw

    key = raw.replace(" ", "_").replace("hrs-", "hr_").replace("hr-", "hr_")
    if key in _PACKAGE_ALIASES:
        return _PACKAGE_ALIASES[key]
    if key.replace("hr_", "hrs_") in _PACKAGE_ALIASES:
        return _PACKAGE_ALIASES[key.replace("hr_", "hrs_")]

    mentions_duration = "hr" in raw or "hour" in raw
    if "10" in raw and (mentions_duration or "100" in raw):
        return "10hrs-100km"
    if "8" in raw and (mentions_duration or "80" in raw):
        return "8hrs-80km"
    if "4" in raw and (mentions_duration or "40" in raw):
        return "4hrs-40km"

    logger.warning(f"Unrecognized package id {package_id!r}, using {DEFAULT_PACKAGE_ID}")
    return DEFAULT_PACKAGE_ID


def package_display_name(package_id: str) -> str:
    return LOCAL_PACKAGES[normalize_package_id(package_id)].display_name
