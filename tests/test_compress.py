import logging

import pytest

from conftest import FakeDecoder, FakeEncoder, FakeProber
from pic_compress import (
    BudgetUnreachable,
    CompressionOptions,
    DecodeFailure,
    EncodeFailure,
    ImageCompressor,
    InvalidConfiguration,
    derive_filename,
)
from pic_compress.formats import FORMATS
from pic_compress.geometry import Rect


@pytest.fixture
def decoder():
    return FakeDecoder(2000, 1500)


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def prober():
    return FakeProber({"webp", "png", "jpeg"})


@pytest.fixture
def compressor(decoder, canvas_factory, encoder, prober, support_cache):
    return ImageCompressor(
        decoder=decoder,
        canvas_factory=canvas_factory,
        encoder=encoder,
        prober=prober,
        support_cache=support_cache,
    )


def test_trivial_fit_is_accepted_on_the_first_pass(compressor, canvas_factory):
    result = compressor.compress(b"img", max_width=800, max_size_mb=1, filename="holiday.png")

    assert (result.width, result.height) == (800, 600)
    assert result.attempts == 1
    assert result.format == "webp"
    assert result.mime_type == "image/webp"
    assert result.filename == "holiday.webp"
    assert result.size <= 1024 * 1024
    assert canvas_factory.sizes == [(800, 600)]
    src, dst, smoothing = canvas_factory.canvases[0].draws[0]
    assert src == Rect(0, 0, 2000, 1500)
    assert dst == Rect(0, 0, 800, 600)
    assert smoothing == "high"


def test_unreachable_budget_gives_up_after_three_attempts(compressor, canvas_factory, encoder):
    with pytest.raises(BudgetUnreachable) as excinfo:
        compressor.compress(b"img", max_size_mb=0.0001, min_quality=0.5, preferred_format="jpeg")

    assert canvas_factory.sizes == [(800, 600), (720, 540), (648, 486)]
    assert all(quality >= 0.5 for _, _, _, quality in encoder.calls)
    error = excinfo.value
    assert (error.width, error.height, error.format) == (648, 486, "jpeg")
    assert error.last_size > 104
    assert "size constraints" in str(error)


def test_attempt_ceiling_is_configurable(compressor, canvas_factory):
    with pytest.raises(BudgetUnreachable):
        compressor.compress(b"img", max_size_mb=0.0001, max_attempts=5)
    assert len(canvas_factory.sizes) == 5


def test_downscales_until_the_budget_fits(compressor, canvas_factory):
    # 800x600 needs quality below 0.1 for 8000 bytes, 648x486 does not
    result = compressor.compress(b"img", max_size_mb=8000 / (1024 * 1024))
    assert result.attempts > 1
    assert result.size <= 8000
    assert (result.width, result.height) == canvas_factory.sizes[-1]


def test_oversized_png_falls_back_to_webp(compressor, encoder):
    result = compressor.compress(b"img", preferred_format="png", filename="scan.png")

    assert result.format == "webp"
    assert result.mime_type == "image/webp"
    assert result.filename == "scan.webp"
    assert result.size <= CompressionOptions().max_size_bytes
    assert result.attempts == 2
    assert encoder.calls[0] == ("png", 800, 600, None)


def test_png_that_fits_is_kept(compressor):
    result = compressor.compress(b"img", preferred_format="png", max_size_mb=2)
    assert result.format == "png"
    assert result.quality is None


def test_png_whose_lossy_fallbacks_all_fail_is_fatal(compressor, encoder):
    encoder.failing = {"webp", "jpeg"}
    with pytest.raises(EncodeFailure):
        compressor.compress(b"img", preferred_format="png")


def test_lossless_encode_error_is_fatal(compressor, encoder):
    encoder.failing = {"png"}
    with pytest.raises(EncodeFailure):
        compressor.compress(b"img", preferred_format="png")
    assert [call[0] for call in encoder.calls] == ["png"]


def test_lossy_encode_error_falls_back_to_another_format(compressor, encoder):
    encoder.failing = {"webp"}
    result = compressor.compress(b"img")
    assert result.format == "jpeg"
    assert result.filename == "image.jpg"
    assert result.attempts == 1


def test_every_failing_fallback_is_retried_within_one_attempt(canvas_factory, support_cache):
    encoder = FakeEncoder(failing={"webp", "avif"})
    prober = FakeProber({"png", "webp", "avif", "jpeg"})
    compressor = ImageCompressor(FakeDecoder(2000, 1500), canvas_factory, encoder, prober, support_cache)

    result = compressor.compress(b"img", preferred_format="png")

    assert result.format == "jpeg"
    assert result.attempts == 2
    assert result.size <= CompressionOptions().max_size_bytes
    assert [call[0] for call in encoder.calls[:4]] == ["png", "webp", "avif", "jpeg"]
    assert canvas_factory.sizes == [(800, 600), (800, 600)]


def test_lossy_encode_error_without_alternative_is_fatal(compressor, encoder):
    encoder.failing = {"webp", "jpeg"}
    with pytest.raises(EncodeFailure):
        compressor.compress(b"img")


def test_invalid_configuration_fails_before_decoding(compressor, decoder):
    with pytest.raises(InvalidConfiguration, match="maxSizeMB must be greater than 0"):
        compressor.compress(b"img", max_size_mb=-1)
    assert decoder.calls == 0


def test_decode_failure_is_not_retried(compressor, decoder, encoder):
    with pytest.raises(DecodeFailure):
        compressor.compress(b"garbage")
    assert decoder.calls == 1
    assert encoder.calls == []


def test_resources_are_released_on_success_and_failure(compressor, decoder, canvas_factory):
    compressor.compress(b"img")
    with pytest.raises(BudgetUnreachable):
        compressor.compress(b"img", max_size_mb=0.0001)

    assert all(bitmap.closed for bitmap in decoder.bitmaps)
    assert all(canvas.closed for canvas in canvas_factory.canvases)


def test_resources_are_released_when_encoding_fails(compressor, decoder, encoder, canvas_factory):
    encoder.failing = {"png"}
    with pytest.raises(EncodeFailure):
        compressor.compress(b"img", preferred_format="png")

    assert decoder.bitmaps and all(bitmap.closed for bitmap in decoder.bitmaps)
    assert canvas_factory.canvases and all(canvas.closed for canvas in canvas_factory.canvases)


def test_one_pixel_floor_stops_early(canvas_factory, prober, support_cache):
    encoder = FakeEncoder(size_model=lambda fmt, width, height, quality: 100)
    compressor = ImageCompressor(FakeDecoder(1, 1), canvas_factory, encoder, prober, support_cache)
    with pytest.raises(BudgetUnreachable):
        compressor.compress(b"img", max_size_mb=1e-6)
    assert canvas_factory.sizes == [(1, 1)]


def test_huge_sources_are_pre_downscaled(canvas_factory, encoder, prober, support_cache, caplog):
    compressor = ImageCompressor(FakeDecoder(10000, 5000), canvas_factory, encoder, prober, support_cache)
    with caplog.at_level(logging.INFO, logger="pic_compress"):
        result = compressor.compress(b"img", debug=True)

    assert (result.width, result.height) == (800, 400)
    assert "Quick downscale by divisor 5 to 2000x1000" in caplog.text
    assert "Using format: image/webp" in caplog.text
    assert "Final size" in caplog.text


def test_quiet_without_debug(compressor, caplog):
    with caplog.at_level(logging.INFO, logger="pic_compress"):
        compressor.compress(b"img")
    assert caplog.text == ""


def test_max_height_defaults_to_max_width(canvas_factory, encoder, prober, support_cache):
    compressor = ImageCompressor(FakeDecoder(1000, 3000), canvas_factory, encoder, prober, support_cache)
    assert compressor.compress(b"img", max_size_mb=1, max_width=300).height == 300
    assert compressor.compress(b"img", max_size_mb=1, max_width=300, max_height=600).height == 600


@pytest.mark.parametrize("mode", ["contain", "cover", "fill", "inside", "outside"])
def test_canvas_respects_bounds_in_every_mode(compressor, mode):
    result = compressor.compress(b"img", resize_mode=mode, max_width=640, max_height=400)
    assert result.width <= 640 and result.height <= 400


def test_support_is_probed_once_per_cache(compressor, prober):
    compressor.compress(b"img")
    compressor.compress(b"img", preferred_format="png")
    assert len(prober.calls) == len(set(prober.calls)) == 4


def test_options_and_overrides_combine(compressor):
    options = CompressionOptions(preferred_format="jpeg", output_filename="avatar.jpg")
    result = compressor.compress(b"img", options, max_width=100)
    assert result.filename == "avatar.jpg"
    assert result.width == 100


@pytest.mark.parametrize(
    "output_filename, source_name, expected",
    [
        ("custom.bin", "photo.png", "custom.bin"),
        (None, "photo.png", "photo.webp"),
        (None, "/tmp/albums/photo.final.png", "photo.final.webp"),
        (None, None, "image.webp"),
        (None, "", "image.webp"),
    ],
)
def test_derive_filename(output_filename, source_name, expected):
    assert derive_filename(FORMATS["webp"], output_filename, source_name) == expected
