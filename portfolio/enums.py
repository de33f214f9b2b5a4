from enum import Enum


class CreationType(str, Enum):
    PORTFOLIO = "portfolio"
    GAME = "game"
    LIBRARY = "library"
    MAP = "map"
    OTHER = "other"
    TOOL = "tool"
    WEBSITE = "website"


class TechnologyType(str, Enum):
    FRAMEWORK = "framework"
    GAME_ENGINE = "game_engine"
    LANGUAGE = "language"
    LIBRARY = "library"
    OTHER = "other"


class VideoStatus(str, Enum):
    PENDING = "pending"
    TRANSCODING = "transcoding"
    READY = "ready"
    ERROR = "error"


class VideoVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class NotificationSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class PictureVariant(str, Enum):
    THUMBNAIL = "thumbnail"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    FULL = "full"


class PictureFormat(str, Enum):
    AVIF = "avif"
    WEBP = "webp"
    JPEG = "jpeg"
