import pytest

from rendition_core.errors import ExtractionError
from rendition_core.imaging.metadata import (
    EMPTY_METADATA,
    extract_image_metadata,
    read_image_metadata,
)


def test_metadata_from_bytes(make_image):
    metadata = extract_image_metadata(make_image(640, 480, "JPEG"))
    assert (metadata.width, metadata.height, metadata.format) == (640, 480, "jpeg")
    assert metadata.long_edge == 640
    assert not metadata.is_empty


def test_metadata_from_path(tmp_path, make_image):
    path = tmp_path / "sample.png"
    path.write_bytes(make_image(120, 300))
    metadata = extract_image_metadata(str(path))
    assert (metadata.width, metadata.height, metadata.format) == (120, 300, "png")


def test_metadata_malformed_bytes_returns_zero_value():
    metadata = extract_image_metadata(b"definitely not an image")
    assert metadata == EMPTY_METADATA
    assert (metadata.width, metadata.height, metadata.format) == (0, 0, "")


def test_metadata_truncated_header(make_image):
    data = make_image(50, 50)
    assert extract_image_metadata(data[:10]) == EMPTY_METADATA


def test_metadata_empty_and_missing(tmp_path):
    assert extract_image_metadata(b"") == EMPTY_METADATA
    assert extract_image_metadata(None) == EMPTY_METADATA
    assert extract_image_metadata(str(tmp_path / "missing.jpg")) == EMPTY_METADATA


def test_read_metadata_raises_extraction_error():
    with pytest.raises(ExtractionError):
        read_image_metadata(b"definitely not an image")
    with pytest.raises(ExtractionError):
        read_image_metadata(b"")
