"""Tests for request validation."""

import math

import pytest

from conftest import PNG_DATA_URL
from looklab.errors import ValidationError
from looklab.schemas.generation import FabricOptions, GenerationRequest, ReferenceImage
from looklab.vendor import validation
from looklab.vendor.validation import (
    check_image_bytes,
    clamp_number,
    decode_data_url,
    validate_reference,
    validate_request,
)

ELEVEN_MB = 11 * 1024 * 1024


def _inline(**kwargs) -> ReferenceImage:
    return ReferenceImage(data_url=PNG_DATA_URL, mime_type="image/png", **kwargs)


class TestPrompt:

    def test_empty_prompt_rejected_for_generate(self):
        with pytest.raises(ValidationError, match="Prompt is required"):
            validate_request(GenerationRequest(prompt="   "))

    def test_prompt_length_bound(self):
        validate_request(GenerationRequest(prompt="x" * 2000))
        with pytest.raises(ValidationError):
            validate_request(GenerationRequest(prompt="x" * 2001))

    def test_empty_prompt_allowed_for_composites(self):
        request = GenerationRequest(mode="fabric_swap", reference_images=[_inline()])
        assert len(validate_request(request)) == 1

    def test_seed_range(self):
        validate_request(GenerationRequest(prompt="dress", seed=2147483647))
        with pytest.raises(ValidationError, match="Seed"):
            validate_request(GenerationRequest(prompt="dress", seed=0))


class TestReferences:

    def test_too_many_references(self):
        refs = [ReferenceImage(url=f"https://cdn.test/{i}.png") for i in range(6)]
        with pytest.raises(ValidationError, match="At most 5"):
            validate_request(GenerationRequest(prompt="dress", reference_images=refs))

    def test_declared_oversize_reference(self):
        ref = ReferenceImage(url="https://cdn.test/big.png", size=ELEVEN_MB)
        with pytest.raises(ValidationError, match="10MB"):
            validate_request(GenerationRequest(prompt="dress", reference_images=[ref]))

    def test_decoded_oversize_reference(self, monkeypatch):
        monkeypatch.setattr(validation, "MAX_REFERENCE_BYTES", 10)
        with pytest.raises(ValidationError, match="10MB"):
            validate_reference(_inline())

    def test_unsupported_mime(self):
        ref = ReferenceImage(url="https://cdn.test/a.gif", mime_type="image/gif")
        with pytest.raises(ValidationError, match="Unsupported"):
            validate_reference(ref)

    def test_metadata_mismatch(self):
        ref = ReferenceImage(data_url=PNG_DATA_URL, mime_type="image/jpeg")
        with pytest.raises(ValidationError, match="mismatch"):
            validate_reference(ref)

    def test_needs_exactly_one_source(self):
        with pytest.raises(ValidationError):
            validate_reference(ReferenceImage())
        with pytest.raises(ValidationError):
            validate_reference(ReferenceImage(url="https://cdn.test/a.png", data_url=PNG_DATA_URL))

    def test_url_must_be_http(self):
        with pytest.raises(ValidationError):
            validate_reference(ReferenceImage(url="file:///etc/passwd"))

    def test_inline_reference_decoded(self):
        decoded = validate_reference(_inline())
        assert decoded.mime == "image/png"
        assert decoded.byte_size > 0
        assert decoded.data_url == PNG_DATA_URL

    def test_url_reference_returns_none(self):
        assert validate_reference(ReferenceImage(url="https://cdn.test/a.png")) is None


class TestModes:

    def test_fabric_needs_one_reference(self):
        with pytest.raises(ValidationError, match="exactly one"):
            validate_request(GenerationRequest(mode="fabric_swap"))

    def test_custom_fabric_needs_label(self):
        request = GenerationRequest(
            mode="fabric_swap",
            reference_images=[_inline()],
            fabric=FabricOptions(fabric_type="custom"),
        )
        with pytest.raises(ValidationError, match="label"):
            validate_request(request)

    def test_try_on_needs_two_references(self):
        request = GenerationRequest(mode="try_on", reference_images=[ReferenceImage(url="https://cdn.test/a.png")])
        with pytest.raises(ValidationError, match="Model and garment"):
            validate_request(request)


def test_decode_data_url_rejects_garbage():
    with pytest.raises(ValidationError):
        decode_data_url("data:image/png;base64,@@@")
    with pytest.raises(ValidationError):
        decode_data_url("https://cdn.test/a.png")


def test_clamp_number():
    assert clamp_number(5, 10, 100, 70) == 10
    assert clamp_number(500, 10, 100, 70) == 100
    assert clamp_number(None, 10, 100, 70) == 70
    assert clamp_number(math.nan, 10, 100, 70) == 70


def test_check_image_bytes(png_bytes):
    assert check_image_bytes(png_bytes, "IMAGE/PNG") == "image/png"
    with pytest.raises(ValidationError, match="empty"):
        check_image_bytes(b"", "image/png")
    with pytest.raises(ValidationError, match="JPG/PNG/WebP"):
        check_image_bytes(png_bytes, "application/pdf")
