import io
import random

import pytest
from PIL import Image

from rendition_core.config import CodecSettings
from rendition_core.deadline import Deadline
from rendition_core.errors import DeadlineExceeded, DerivativeError
from rendition_core.imaging.generator import DerivativeGenerator, compute_target_size
from rendition_core.profiles import parse_profile, parse_profiles

SMALL = parse_profile("small:crop:150:75:thumbnails")
MEDIUM = parse_profile("medium:fit:600:80:mobile")
LARGE = parse_profile("large:fit:1200:85:desktop")


def _decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_compute_target_size_rules():
    assert compute_target_size(SMALL, 4000, 3000) == (150, 150)
    assert compute_target_size(SMALL, 40, 30) == (150, 150)
    assert compute_target_size(MEDIUM, 4000, 3000) == (600, 450)
    assert compute_target_size(LARGE, 3000, 4000) == (900, 1200)
    assert compute_target_size(LARGE, 1200, 800) is None
    assert compute_target_size(LARGE, 300, 300) is None
    assert compute_target_size(MEDIUM, 6000, 2) == (600, 1)
    assert compute_target_size(MEDIUM, 0, 0) is None


def test_generate_landscape_profiles(make_image):
    generator = DerivativeGenerator()
    source = make_image(4000, 3000, "JPEG")

    small = generator.generate(source, SMALL)
    medium = generator.generate(source, MEDIUM)
    large = generator.generate(source, LARGE)

    assert (small.width, small.height) == (150, 150)
    assert (medium.width, medium.height) == (600, 450)
    assert (large.width, large.height) == (1200, 900)
    for generated in (small, medium, large):
        assert generated.content_type == "image/webp"
        assert generated.extension == "webp"
        decoded = _decode(generated.data)
        assert decoded.format == "WEBP"
        assert decoded.size == (generated.width, generated.height)
        assert generated.size_bytes == len(generated.data)


def test_generate_small_source_skips_fit_but_crops(make_image):
    generator = DerivativeGenerator()
    source = make_image(300, 300)
    small = generator.generate(source, SMALL)
    assert (small.width, small.height) == (150, 150)
    assert generator.generate(source, LARGE) is None


def test_generate_crop_upscales_tiny_source(make_image):
    generated = DerivativeGenerator().generate(make_image(40, 20), SMALL)
    assert (generated.width, generated.height) == (150, 150)


def test_generate_crop_is_centered(tmp_path):
    image = Image.new("RGB", (300, 100), (255, 0, 0))
    image.paste((0, 0, 255), (100, 0, 200, 100))
    path = tmp_path / "stripe.png"
    image.save(path)

    generated = DerivativeGenerator().generate(str(path), parse_profile("small:crop:50:100"))
    decoded = _decode(generated.data).convert("RGB")
    red, green, blue = decoded.getpixel((25, 25))
    assert blue > 200 and red < 60


def test_generate_respects_exif_orientation():
    image = Image.new("RGB", (800, 400), (10, 120, 10))
    exif = Image.Exif()
    exif[0x0112] = 6
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", exif=exif.tobytes())

    generated = DerivativeGenerator().generate(
        buffer.getvalue(), parse_profile("medium:fit:200:80")
    )
    assert (generated.width, generated.height) == (100, 200)


def test_generate_animated_gif(make_animated_gif):
    generated = DerivativeGenerator().generate(
        make_animated_gif(800, 400),
        parse_profile("medium:fit:200:80"),
        animated=True,
    )
    assert generated.animated is True
    assert (generated.width, generated.height) == (200, 100)
    decoded = Image.open(io.BytesIO(generated.data))
    assert decoded.format == "WEBP"
    assert getattr(decoded, "n_frames", 1) == 3


def test_generate_animated_hint_ignored_for_still_image(make_image):
    generated = DerivativeGenerator().generate(
        make_image(800, 400), parse_profile("medium:fit:200:80"), animated=True
    )
    assert generated.animated is False


def test_generate_without_hint_flattens_animation(make_animated_gif):
    generated = DerivativeGenerator().generate(
        make_animated_gif(800, 400), parse_profile("medium:fit:200:80")
    )
    assert generated.animated is False
    assert getattr(Image.open(io.BytesIO(generated.data)), "n_frames", 1) == 1


def test_generate_keeps_alpha():
    image = Image.new("RGBA", (400, 400), (0, 0, 0, 0))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    generated = DerivativeGenerator().generate(buffer.getvalue(), SMALL)
    assert _decode(generated.data).mode == "RGBA"


def test_generate_malformed_source_raises():
    with pytest.raises(DerivativeError):
        DerivativeGenerator().generate(b"not an image", SMALL)


def test_generate_rejects_oversized_source(make_image):
    generator = DerivativeGenerator(CodecSettings(max_pixels=1000))
    with pytest.raises(DerivativeError, match="too large"):
        generator.generate(make_image(100, 100), SMALL)


def test_generate_honours_deadline(make_image):
    deadline = Deadline()
    deadline.cancel()
    with pytest.raises(DeadlineExceeded):
        DerivativeGenerator().generate(make_image(100, 100), SMALL, deadline=deadline)


def test_generate_quality_changes_output_size(make_image):
    rng = random.Random(7)
    image = Image.new("RGB", (400, 400))
    image.putdata(
        [(rng.randrange(256), rng.randrange(256), rng.randrange(256)) for _ in range(400 * 400)]
    )
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    low, high = parse_profiles("small:fit:200:10,large:fit:200:95")
    generator = DerivativeGenerator()
    assert (
        generator.generate(buffer.getvalue(), low).size_bytes
        < generator.generate(buffer.getvalue(), high).size_bytes
    )
