from __future__ import annotations

from portfolio.services.images.errors import ImageTranscodingError, TranscodingErrorCode


def test_severity_classification() -> None:
    assert TranscodingErrorCode.RESOURCE_LIMIT_EXCEEDED.severity == "critical"
    assert TranscodingErrorCode.MEMORY_LIMIT_EXCEEDED.severity == "critical"
    assert TranscodingErrorCode.IMAGE_TOO_LARGE.severity == "critical"
    assert TranscodingErrorCode.ALL_DRIVERS_FAILED.severity == "error"
    assert TranscodingErrorCode.DRIVER_NOT_AVAILABLE.severity == "error"
    assert TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED.severity == "warning"
    assert TranscodingErrorCode.UNSUPPORTED_FORMAT.severity == "warning"
    assert TranscodingErrorCode.PILLOW_ENCODING_FAILED.severity == "info"
    assert TranscodingErrorCode.EMPTY_OUTPUT.severity == "info"
    assert TranscodingErrorCode.INVALID_SOURCE.severity == "info"


def test_fallback_eligibility() -> None:
    eligible = {code for code in TranscodingErrorCode if code.should_trigger_fallback}
    assert eligible == {
        TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED,
        TranscodingErrorCode.EMPTY_OUTPUT,
        TranscodingErrorCode.UNSUPPORTED_FORMAT,
    }


def test_message_carries_driver_and_fallback() -> None:
    error = ImageTranscodingError.imagemagick_failed("convert crashed")
    assert error.message == "convert crashed (Driver: imagemagick)"
    error.with_fallback("pillow")
    assert error.message == "convert crashed (Driver: imagemagick) (Fallback attempted: pillow)"
    assert str(error) == error.message


def test_default_message_is_code_description() -> None:
    error = ImageTranscodingError(TranscodingErrorCode.INVALID_SOURCE)
    assert error.message == "Invalid source image"


def test_factories_build_expected_messages() -> None:
    assert ImageTranscodingError.empty_output("pillow").message == (
        "Image encoding resulted in empty output (0 bytes) (Driver: pillow)"
    )
    assert ImageTranscodingError.unsupported_format("avif", "pillow").message == (
        "Format 'avif' is not supported by driver 'pillow' (Driver: pillow)"
    )
    limit = ImageTranscodingError.resource_limit_exceeded("imagemagick", "dimensions", {"max_width": 10})
    assert limit.message == "Resource limit exceeded: dimensions (Driver: imagemagick)"
    assert limit.severity == "critical"
    assert limit.should_trigger_fallback is False


def test_all_drivers_failed_keeps_attempts() -> None:
    error = ImageTranscodingError.all_drivers_failed(
        {"imagemagick": "first failure", "pillow": "second failure"}, {"codec": "avif"}
    )
    assert error.driver_used == "Multiple"
    assert error.message == (
        "All available drivers failed. Attempts: imagemagick, pillow (Driver: Multiple)"
    )
    assert error.context == {
        "codec": "avif",
        "attempts": {"imagemagick": "first failure", "pillow": "second failure"},
    }


def test_to_dict() -> None:
    error = ImageTranscodingError.pillow_failed("bad data", {"resolution": 300})
    assert error.to_dict() == {
        "error_code": "pillow_encoding_failed",
        "driver_used": "pillow",
        "fallback_attempted": None,
        "message": "bad data (Driver: pillow)",
        "context": {"resolution": 300},
        "severity": "info",
    }
