from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ProfileName(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class ResizeMode(str, Enum):
    CROP = "crop"
    FIT = "fit"


@dataclass(frozen=True)
class Profile:
    name: ProfileName
    mode: ResizeMode
    size: int
    quality: int
    bucket: str
    effort: int = 4

    @property
    def is_fixed_crop(self) -> bool:
        return self.mode is ResizeMode.CROP


DEFAULT_PROFILES = (
    "small:crop:150:75:thumbnails,"
    "medium:fit:600:80:mobile,"
    "large:fit:1200:85:desktop"
)


def _parse_bounded_int(label: str, raw: str, low: int, high: int) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Profile {label} must be an integer: {raw}") from exc
    if value < low or value > high:
        raise ValueError(f"Profile {label} must be between {low} and {high}: {value}")
    return value


def parse_profile(entry: str) -> Profile:
    parts = [part.strip() for part in entry.split(":")]
    if len(parts) < 4 or len(parts) > 6:
        raise ValueError(
            "Profile entries look like name:mode:size:quality[:bucket[:effort]], "
            f"got {entry!r}"
        )
    try:
        name = ProfileName(parts[0].lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in ProfileName)
        raise ValueError(f"Profile name must be one of: {allowed}") from exc
    try:
        mode = ResizeMode(parts[1].lower())
    except ValueError as exc:
        raise ValueError("Profile mode must be one of: crop, fit") from exc
    size = _parse_bounded_int("size", parts[2], 1, 16384)
    quality = _parse_bounded_int("quality", parts[3], 1, 100)
    bucket = parts[4] if len(parts) > 4 and parts[4] else name.value
    effort = _parse_bounded_int("effort", parts[5], 0, 6) if len(parts) > 5 else 4
    return Profile(
        name=name,
        mode=mode,
        size=size,
        quality=quality,
        bucket=bucket,
        effort=effort,
    )


def parse_profiles(value: str) -> tuple[Profile, ...]:
    profiles: list[Profile] = []
    seen: set[ProfileName] = set()
    for raw in value.split(","):
        cleaned = raw.strip()
        if not cleaned:
            continue
        profile = parse_profile(cleaned)
        if profile.name in seen:
            raise ValueError(f"Duplicate profile: {profile.name.value}")
        seen.add(profile.name)
        profiles.append(profile)
    if not profiles:
        raise ValueError("At least one derivative profile is required")
    return tuple(profiles)


def largest_profile(profiles: tuple[Profile, ...]) -> Profile:
    return max(profiles, key=lambda profile: profile.size)
