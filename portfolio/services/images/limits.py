from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from portfolio.config import settings
from portfolio.services.images.drivers import read_dimensions
from portfolio.services.images.errors import ImageTranscodingError, TranscodingErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DriverLimits:
    max_width: int
    max_height: int
    max_area: int | None = None


def configured_limits() -> dict[str, DriverLimits]:
    return {
        "imagemagick": DriverLimits(
            max_width=settings.imagemagick_max_width,
            max_height=settings.imagemagick_max_height,
            max_area=settings.imagemagick_max_area,
        ),
        "pillow": DriverLimits(
            max_width=settings.pillow_max_width,
            max_height=settings.pillow_max_height,
        ),
    }


_UNREADABLE = {
    "imagemagick": ImageTranscodingError.imagemagick_failed,
    "pillow": ImageTranscodingError.pillow_failed,
}


class ResourceLimitChecker:
    """Pre-flight dimension checks run before a driver touches the image."""

    def __init__(
        self,
        limits: Mapping[str, DriverLimits] | None = None,
        dimensions: Callable[[bytes], tuple[int, int] | None] = read_dimensions,
    ) -> None:
        self.limits = dict(limits) if limits is not None else configured_limits()
        self.dimensions = dimensions

    def check(self, source: bytes, driver_name: str) -> None:
        limits = self.limits.get(driver_name)
        if limits is None:
            return
        try:
            size = self.dimensions(source)
            if size is None:
                factory = _UNREADABLE.get(driver_name)
                if factory is not None:
                    raise factory("Unable to determine image dimensions")
                raise ImageTranscodingError(
                    TranscodingErrorCode.INVALID_SOURCE,
                    driver_used=driver_name,
                    message="Unable to determine image dimensions",
                )
            width, height = size
            area = width * height
            too_wide = width > limits.max_width or height > limits.max_height
            too_big = limits.max_area is not None and area > limits.max_area
            if too_wide or too_big:
                context = {
                    "image_width": width,
                    "image_height": height,
                    "max_width": limits.max_width,
                    "max_height": limits.max_height,
                }
                if limits.max_area is not None:
                    context["image_area"] = area
                    context["max_area"] = limits.max_area
                raise ImageTranscodingError.resource_limit_exceeded(
                    driver_name, "dimensions", context
                )
        except ImageTranscodingError:
            raise
        except Exception as exc:
            logger.warning("Failed to check %s resource limits: %s", driver_name, exc)
