import io

import pytest
from conftest import image_bytes
from PIL import Image

from imgjobs.core.exceptions import EncoderError
from imgjobs.core.registries import EncoderRegistry, encoder_registry
from imgjobs.jobs.encoders import JpegEncoder
from imgjobs.jobs.transform import target_size, transform_image


@pytest.fixture
def jpeg():
    return encoder_registry.get("jpeg")


@pytest.mark.parametrize(
    "width, height, expected",
    [
        (None, None, (64, 32)),
        (100, 100, (100, 100)),
        (32, None, (32, 16)),
        (None, 64, (128, 64)),
        (1, None, (1, 1)),
    ],
)
def test_target_size(width, height, expected):
    assert target_size((64, 32), width, height) == expected


def test_encoders_registered():
    assert {"jpeg", "webp"} <= set(encoder_registry.list())
    assert encoder_registry.get("jpeg").content_type == "image/jpeg"
    assert encoder_registry.get("webp").content_type == "image/webp"


def test_unknown_encoder():
    with pytest.raises(KeyError, match="available: jpeg, webp"):
        encoder_registry.get("gif")


def test_encoder_lookup_aliases_and_case():
    assert encoder_registry.get("JPG") is encoder_registry.get("jpeg")


def test_frozen_registry_rejects_registration():
    registry = EncoderRegistry()
    registry.register("jpeg", JpegEncoder())
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError):
        registry.register("webp", JpegEncoder())
    assert registry.list() == ["jpeg"]


def test_keeps_size_without_dimensions(jpeg):
    output = transform_image(image_bytes((64, 32)), jpeg, quality=10)

    with Image.open(io.BytesIO(output)) as image:
        assert image.format == "JPEG"
        assert image.size == (64, 32)


def test_resizes_to_both_dimensions(jpeg):
    output = transform_image(image_bytes((64, 32)), jpeg, 10, width=20, height=40)

    with Image.open(io.BytesIO(output)) as image:
        assert image.size == (20, 40)


def test_resize_with_one_dimension_keeps_aspect(jpeg):
    output = transform_image(image_bytes((64, 32)), jpeg, 10, width=16)

    with Image.open(io.BytesIO(output)) as image:
        assert image.size == (16, 8)


def test_alpha_source_becomes_rgb_jpeg(jpeg):
    output = transform_image(image_bytes(mode="RGBA"), jpeg, 10)

    with Image.open(io.BytesIO(output)) as image:
        assert image.mode == "RGB"


def test_low_quality_is_smaller(jpeg):
    buffer = io.BytesIO()
    Image.effect_noise((256, 256), 64).save(buffer, format="PNG")
    source = buffer.getvalue()
    low = transform_image(source, jpeg, 10)
    high = transform_image(source, jpeg, 95)
    assert len(low) < len(high)


def test_webp_output():
    output = transform_image(image_bytes(), encoder_registry.get("webp"), 10)

    with Image.open(io.BytesIO(output)) as image:
        assert image.format == "WEBP"


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_undecodable_bytes(jpeg, data):
    with pytest.raises(EncoderError):
        transform_image(data, jpeg, 10)
