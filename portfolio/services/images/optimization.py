from __future__ import annotations

import logging
from pathlib import PurePosixPath

from sqlalchemy.orm import Session

from portfolio.enums import PictureFormat, PictureVariant
from portfolio.services import notifications, pictures
from portfolio.services.images.drivers import read_dimensions
from portfolio.services.images.errors import ImageTranscodingError
from portfolio.services.images.transcoding import ImageTranscodingService

logger = logging.getLogger(__name__)

VARIANT_SIZES = {
    PictureVariant.THUMBNAIL: 100,
    PictureVariant.SMALL: 300,
    PictureVariant.MEDIUM: 600,
    PictureVariant.LARGE: 1200,
}
FORMATS = (PictureFormat.AVIF, PictureFormat.WEBP, PictureFormat.JPEG)


def variant_resolutions(highest: int) -> list[tuple[PictureVariant, int | None]]:
    """Target size per variant; ``None`` keeps the original size."""
    plan: list[tuple[PictureVariant, int | None]] = []
    for variant, size in VARIANT_SIZES.items():
        dimension = min(size, highest)
        plan.append((variant, None if dimension >= highest else dimension))
    plan.append((PictureVariant.FULL, None))
    return plan


def notify_fallback(session: Session):
    def _listener(driver: str, attempts: dict[str, str], codec: str) -> None:
        notifications.warning(
            session,
            "Fallback image driver used",
            f"The primary driver failed and the fallback '{driver}' encoded the {codec} image.",
            {"successful_driver": driver, "failed_attempts": attempts, "codec": codec},
        )

    return _listener


class PictureOptimizer:
    def __init__(self, session: Session, transcoder: ImageTranscodingService | None = None) -> None:
        self.session = session
        self.transcoder = transcoder or ImageTranscodingService(on_fallback=notify_fallback(session))

    def optimize(self, picture_id: int) -> int:
        """Generate every variant/format of a picture and return how many were stored."""
        picture = pictures.get_picture(self.session, picture_id)
        if picture is None:
            logger.warning("Picture %s not found, skipping optimization", picture_id)
            return 0
        original = pictures.storage_path(picture["path_original"])
        source = original.read_bytes()
        size = read_dimensions(source)
        if size is None:
            raise ImageTranscodingError.pillow_failed(
                "Unable to determine image dimensions", {"picture_id": picture_id}
            )
        width, height = size
        highest = max(width, height)

        base = PurePosixPath(picture["path_original"])
        stem = base.parent / base.stem
        stored: list[dict[str, str]] = []
        seen: set[tuple[str, str]] = set()
        for variant, resolution in variant_resolutions(highest):
            for image_format in FORMATS:
                try:
                    result = self.transcoder.transcode(source, resolution, image_format.value)
                except ImageTranscodingError as exc:
                    logger.error(
                        "Picture %s %s/%s failed: %s",
                        picture_id,
                        variant.value,
                        image_format.value,
                        exc.to_dict(),
                    )
                    continue
                # A format fallback can yield a codec another pass already produced.
                if (variant.value, result.codec) in seen:
                    continue
                seen.add((variant.value, result.codec))
                relative = f"{stem}_{variant.value}.{result.codec}"
                target = pictures.storage_path(relative)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(result.content)
                stored.append({"variant": variant.value, "format": result.codec, "path": relative})

        if not stored:
            raise ImageTranscodingError.all_drivers_failed(
                [f"no variant produced for picture {picture_id}"], {"picture_id": picture_id}
            )
        pictures.replace_optimized(self.session, picture_id, stored)
        pictures.update_dimensions(self.session, picture_id, width, height)
        logger.info("Optimized picture %s into %s files", picture_id, len(stored))
        return len(stored)
