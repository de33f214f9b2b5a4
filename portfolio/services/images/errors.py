from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping


class TranscodingErrorCode(str, Enum):
    IMAGEMAGICK_ENCODING_FAILED = "imagemagick_encoding_failed"
    PILLOW_ENCODING_FAILED = "pillow_encoding_failed"
    DRIVER_NOT_AVAILABLE = "driver_not_available"
    EMPTY_OUTPUT = "empty_output"
    RESOURCE_LIMIT_EXCEEDED = "resource_limit_exceeded"
    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_SOURCE = "invalid_source"
    ALL_DRIVERS_FAILED = "all_drivers_failed"
    MEMORY_LIMIT_EXCEEDED = "memory_limit_exceeded"
    IMAGE_TOO_LARGE = "image_too_large"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def severity(self) -> str:
        if self in _CRITICAL:
            return "critical"
        if self in _ERROR:
            return "error"
        if self in _WARNING:
            return "warning"
        return "info"

    @property
    def should_trigger_fallback(self) -> bool:
        return self in _FALLBACK


_DESCRIPTIONS = {
    TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED: "ImageMagick encoding failed",
    TranscodingErrorCode.PILLOW_ENCODING_FAILED: "Pillow encoding failed",
    TranscodingErrorCode.DRIVER_NOT_AVAILABLE: "Image driver not available",
    TranscodingErrorCode.EMPTY_OUTPUT: "Image encoding produced empty output",
    TranscodingErrorCode.RESOURCE_LIMIT_EXCEEDED: "Image processing resource limit exceeded",
    TranscodingErrorCode.UNSUPPORTED_FORMAT: "Image format not supported by driver",
    TranscodingErrorCode.INVALID_SOURCE: "Invalid source image",
    TranscodingErrorCode.ALL_DRIVERS_FAILED: "All image drivers failed",
    TranscodingErrorCode.MEMORY_LIMIT_EXCEEDED: "Memory limit exceeded during image processing",
    TranscodingErrorCode.IMAGE_TOO_LARGE: "Image dimensions too large for processing",
}
_CRITICAL = {
    TranscodingErrorCode.RESOURCE_LIMIT_EXCEEDED,
    TranscodingErrorCode.MEMORY_LIMIT_EXCEEDED,
    TranscodingErrorCode.IMAGE_TOO_LARGE,
}
_ERROR = {
    TranscodingErrorCode.ALL_DRIVERS_FAILED,
    TranscodingErrorCode.DRIVER_NOT_AVAILABLE,
}
_WARNING = {
    TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED,
    TranscodingErrorCode.UNSUPPORTED_FORMAT,
}
_FALLBACK = {
    TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED,
    TranscodingErrorCode.EMPTY_OUTPUT,
    TranscodingErrorCode.UNSUPPORTED_FORMAT,
}


class ImageTranscodingError(Exception):
    """A classified image encoding failure.

    Carries the error code, the driver that failed, the driver tried as a
    fallback (if any) and free-form context for logs.
    """

    def __init__(
        self,
        error_code: TranscodingErrorCode,
        driver_used: str | None = None,
        fallback_attempted: str | None = None,
        context: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        self.error_code = error_code
        self.driver_used = driver_used
        self.fallback_attempted = fallback_attempted
        self.context = dict(context or {})
        self.custom_message = message
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        text = self.custom_message or self.error_code.description
        if self.driver_used:
            text += f" (Driver: {self.driver_used})"
        if self.fallback_attempted:
            text += f" (Fallback attempted: {self.fallback_attempted})"
        return text

    @property
    def message(self) -> str:
        return self.args[0] if self.args else self._build_message()

    @property
    def severity(self) -> str:
        return self.error_code.severity

    @property
    def should_trigger_fallback(self) -> bool:
        return self.error_code.should_trigger_fallback

    def with_fallback(self, driver: str) -> "ImageTranscodingError":
        self.fallback_attempted = driver
        self.args = (self._build_message(),)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "driver_used": self.driver_used,
            "fallback_attempted": self.fallback_attempted,
            "message": self.message,
            "context": self.context,
            "severity": self.severity,
        }

    @classmethod
    def imagemagick_failed(
        cls, message: str | None = None, context: dict[str, Any] | None = None
    ) -> "ImageTranscodingError":
        return cls(
            TranscodingErrorCode.IMAGEMAGICK_ENCODING_FAILED,
            driver_used="imagemagick",
            context=context,
            message=message,
        )

    @classmethod
    def pillow_failed(
        cls, message: str | None = None, context: dict[str, Any] | None = None
    ) -> "ImageTranscodingError":
        return cls(
            TranscodingErrorCode.PILLOW_ENCODING_FAILED,
            driver_used="pillow",
            context=context,
            message=message,
        )

    @classmethod
    def all_drivers_failed(
        cls,
        attempts: Mapping[str, str] | Iterable[str],
        context: dict[str, Any] | None = None,
    ) -> "ImageTranscodingError":
        # A mapping is driver name -> failure message; the summary names the drivers.
        if isinstance(attempts, Mapping):
            recorded: Any = dict(attempts)
            summary = [str(name) for name in attempts.keys()]
        else:
            recorded = [str(value) for value in attempts]
            summary = recorded
        merged = dict(context or {})
        merged["attempts"] = recorded
        return cls(
            TranscodingErrorCode.ALL_DRIVERS_FAILED,
            driver_used="Multiple",
            context=merged,
            message="All available drivers failed. Attempts: " + ", ".join(summary),
        )

    @classmethod
    def empty_output(
        cls, driver: str, context: dict[str, Any] | None = None
    ) -> "ImageTranscodingError":
        return cls(
            TranscodingErrorCode.EMPTY_OUTPUT,
            driver_used=driver,
            context=context,
            message="Image encoding resulted in empty output (0 bytes)",
        )

    @classmethod
    def unsupported_format(
        cls, format: str, driver: str, context: dict[str, Any] | None = None
    ) -> "ImageTranscodingError":
        return cls(
            TranscodingErrorCode.UNSUPPORTED_FORMAT,
            driver_used=driver,
            context=context,
            message=f"Format '{format}' is not supported by driver '{driver}'",
        )

    @classmethod
    def resource_limit_exceeded(
        cls, driver: str, limit_type: str, context: dict[str, Any] | None = None
    ) -> "ImageTranscodingError":
        return cls(
            TranscodingErrorCode.RESOURCE_LIMIT_EXCEEDED,
            driver_used=driver,
            context=context,
            message=f"Resource limit exceeded: {limit_type}",
        )
