from __future__ import annotations

import io
import logging
import os
import shutil
import subprocess
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from portfolio.services.images.errors import ImageTranscodingError

logger = logging.getLogger(__name__)

QUALITY = {
    "jpeg": 85,
    "webp": 80,
    "avif": 75,
}

_PILLOW_FORMAT_NAMES = {
    "avif": "AVIF",
    "webp": "WEBP",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "bmp": "BMP",
}


class ImageDriver(Protocol):
    name: str

    def is_available(self) -> bool: ...

    def supports(self, codec: str) -> bool: ...

    def encode(self, source: bytes, codec: str, resolution: int | None) -> bytes: ...


def read_dimensions(source: bytes) -> tuple[int, int] | None:
    try:
        with Image.open(io.BytesIO(source)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None


class ImageMagickDriver:
    """Encodes through the ImageMagick command line, bytes in and out over pipes."""

    name = "imagemagick"
    formats = frozenset({"avif", "webp", "jpeg", "png", "gif", "bmp", "tiff"})

    def __init__(self, binary: str = "magick", timeout: float = 120.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def supports(self, codec: str) -> bool:
        return codec in self.formats

    def build_command(self, codec: str, resolution: int | None) -> list[str]:
        # Same argument layout for IM7 "magick" and IM6 "convert".
        command = [self.binary, "-", "-auto-orient", "-strip"]
        if resolution:
            command += ["-resize", f"{resolution}x{resolution}>"]
        quality = QUALITY.get(codec)
        if quality is not None:
            command += ["-quality", str(quality)]
        command.append(f"{codec}:-")
        return command

    def encode(self, source: bytes, codec: str, resolution: int | None) -> bytes:
        context = {"codec": codec, "resolution": resolution}
        if not self.supports(codec):
            raise ImageTranscodingError.unsupported_format(codec, self.name, context)
        try:
            completed = subprocess.run(
                self.build_command(codec, resolution),
                input=source,
                capture_output=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise ImageTranscodingError.imagemagick_failed(
                stderr or f"{os.path.basename(self.binary)} exited with status {exc.returncode}",
                context,
            ) from exc
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ImageTranscodingError.imagemagick_failed(str(exc), context) from exc
        if not completed.stdout:
            raise ImageTranscodingError.empty_output(self.name, context)
        return completed.stdout


class PillowDriver:
    name = "pillow"
    formats = frozenset(_PILLOW_FORMAT_NAMES)

    def is_available(self) -> bool:
        Image.init()
        return "JPEG" in Image.SAVE

    def supports(self, codec: str) -> bool:
        if codec not in self.formats:
            return False
        Image.init()
        return _PILLOW_FORMAT_NAMES[codec] in Image.SAVE

    def encode(self, source: bytes, codec: str, resolution: int | None) -> bytes:
        context = {"codec": codec, "resolution": resolution}
        if not self.supports(codec):
            raise ImageTranscodingError.unsupported_format(codec, self.name, context)
        buffer = io.BytesIO()
        try:
            with Image.open(io.BytesIO(source)) as opened:
                image = ImageOps.exif_transpose(opened)
                if resolution:
                    image.thumbnail((resolution, resolution), Image.Resampling.LANCZOS)
                if codec == "jpeg" and image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
                options: dict = {}
                if codec in QUALITY:
                    options["quality"] = QUALITY[codec]
                image.save(buffer, format=_PILLOW_FORMAT_NAMES[codec], **options)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageTranscodingError.pillow_failed(str(exc), context) from exc
        content = buffer.getvalue()
        if not content:
            raise ImageTranscodingError.empty_output(self.name, context)
        return content


def build_driver(name: str, imagemagick_binary: str = "magick") -> ImageDriver | None:
    if name == "imagemagick":
        return ImageMagickDriver(binary=imagemagick_binary)
    if name == "pillow":
        return PillowDriver()
    logger.warning("Unknown image driver %r ignored", name)
    return None
