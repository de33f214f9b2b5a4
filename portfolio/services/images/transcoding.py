from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from portfolio.config import settings
from portfolio.services.images.drivers import ImageDriver, build_driver
from portfolio.services.images.errors import ImageTranscodingError
from portfolio.services.images.limits import ResourceLimitChecker

logger = logging.getLogger(__name__)

FORMAT_FALLBACKS = {
    "avif": "webp",
    "webp": "jpeg",
    "png": "jpeg",
}

FallbackListener = Callable[[str, dict[str, str], str], None]


@dataclass(frozen=True, slots=True)
class TranscodedImage:
    content: bytes
    codec: str
    driver: str


def configured_drivers() -> list[ImageDriver]:
    drivers = []
    for name in settings.image_drivers:
        driver = build_driver(name, imagemagick_binary=settings.imagemagick_binary)
        if driver is not None:
            drivers.append(driver)
    return drivers


class ImageTranscodingService:
    """Encodes images with the first working driver, falling back down the list."""

    def __init__(
        self,
        drivers: Sequence[ImageDriver] | None = None,
        limit_checker: ResourceLimitChecker | None = None,
        on_fallback: FallbackListener | None = None,
    ) -> None:
        candidates = list(drivers) if drivers is not None else configured_drivers()
        self.drivers = [driver for driver in candidates if driver.is_available()]
        if not self.drivers:
            raise ImageTranscodingError.all_drivers_failed(
                ["No image processing drivers available"],
                {"configured": [driver.name for driver in candidates]},
            )
        self.limit_checker = limit_checker or ResourceLimitChecker()
        self.on_fallback = on_fallback
        logger.info(
            "Available image drivers detected: %s",
            ", ".join(driver.name for driver in self.drivers),
        )

    def drivers_for_format(self, codec: str) -> tuple[str, list[ImageDriver]]:
        """Drivers able to encode ``codec``, following format fallbacks when none can."""
        seen: set[str] = set()
        current = codec
        while current not in seen:
            seen.add(current)
            drivers = [driver for driver in self.drivers if driver.supports(current)]
            if drivers:
                return current, drivers
            fallback = FORMAT_FALLBACKS.get(current)
            if fallback is None:
                break
            logger.info("Format %s not supported, trying fallback format %s", current, fallback)
            current = fallback
        return codec, []

    def _encode_with(
        self, driver: ImageDriver, source: bytes, codec: str, resolution: int | None
    ) -> bytes:
        self.limit_checker.check(source, driver.name)
        content = driver.encode(source, codec, resolution)
        if not content:
            raise ImageTranscodingError.empty_output(
                driver.name, {"codec": codec, "resolution": resolution}
            )
        return content

    def transcode(
        self, source: bytes, resolution: int | None = None, codec: str = "avif"
    ) -> TranscodedImage:
        started = time.monotonic()
        attempts: dict[str, str] = {}
        effective_codec, drivers = self.drivers_for_format(codec)

        for index, driver in enumerate(drivers):
            try:
                content = self._encode_with(driver, source, effective_codec, resolution)
            except ImageTranscodingError as exc:
                attempts[driver.name] = exc.message
                remaining = [other.name for other in drivers[index + 1:]]
                if remaining:
                    exc.with_fallback(remaining[0])
                logger.warning(
                    "Driver %s failed (%s), remaining drivers: %s",
                    driver.name,
                    exc.message,
                    remaining,
                )
                if not exc.should_trigger_fallback:
                    break
                continue

            logger.info(
                "Image transcoding successful driver=%s codec=%s resolution=%s "
                "output_size=%s processing_time=%.2f fallback_used=%s",
                driver.name,
                effective_codec,
                resolution,
                len(content),
                time.monotonic() - started,
                bool(attempts),
            )
            if attempts and self.on_fallback is not None:
                self.on_fallback(driver.name, dict(attempts), effective_codec)
            return TranscodedImage(content=content, codec=effective_codec, driver=driver.name)

        total_time = time.monotonic() - started
        logger.error(
            "All image transcoding drivers failed codec=%s resolution=%s attempts=%s total_time=%.2f",
            codec,
            resolution,
            attempts,
            total_time,
        )
        raise ImageTranscodingError.all_drivers_failed(
            attempts,
            {"codec": codec, "resolution": resolution, "total_time": total_time},
        )

    @property
    def driver_names(self) -> Iterable[str]:
        return [driver.name for driver in self.drivers]
