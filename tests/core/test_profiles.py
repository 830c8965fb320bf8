import pytest

from rendition_core.profiles import (
    DEFAULT_PROFILES,
    ProfileName,
    ResizeMode,
    largest_profile,
    parse_profile,
    parse_profiles,
)


def test_default_profiles():
    profiles = parse_profiles(DEFAULT_PROFILES)
    assert [item.name for item in profiles] == [
        ProfileName.SMALL,
        ProfileName.MEDIUM,
        ProfileName.LARGE,
    ]
    small, medium, large = profiles
    assert small.mode is ResizeMode.CROP
    assert (small.size, small.quality, small.bucket) == (150, 75, "thumbnails")
    assert medium.mode is ResizeMode.FIT
    assert (medium.size, medium.quality, medium.bucket) == (600, 80, "mobile")
    assert (large.size, large.quality, large.bucket) == (1200, 85, "desktop")
    assert all(item.effort == 4 for item in profiles)


def test_parse_profile_defaults_bucket_to_name():
    profile = parse_profile("medium:fit:640:70")
    assert profile.bucket == "medium"
    assert profile.effort == 4


def test_parse_profile_effort():
    assert parse_profile("large:fit:1000:90:web:6").effort == 6


@pytest.mark.parametrize(
    "entry",
    [
        "huge:fit:100:80",
        "small:stretch:100:80",
        "small:crop:0:80",
        "small:crop:100:101",
        "small:crop:abc:80",
        "small:crop:100:80:bucket:9",
        "small:crop",
    ],
)
def test_parse_profile_rejects_bad_entries(entry):
    with pytest.raises(ValueError):
        parse_profile(entry)


def test_parse_profiles_rejects_duplicates_and_empty():
    with pytest.raises(ValueError, match="Duplicate"):
        parse_profiles("small:crop:100:80,small:fit:200:80")
    with pytest.raises(ValueError):
        parse_profiles(" , ")


def test_largest_profile():
    profiles = parse_profiles("large:fit:800:85,medium:fit:1600:80")
    assert largest_profile(profiles).name is ProfileName.MEDIUM
