from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


metadata = MetaData()

pictures_table = Table(
    "pictures",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("filename", String(255), nullable=False),
    Column("path_original", Text, nullable=False),
    Column("width", Integer),
    Column("height", Integer),
    Column("size", BigInteger, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)
optimized_pictures_table = Table(
    "optimized_pictures",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "picture_id",
        Integer,
        ForeignKey("pictures.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("variant", String(32), nullable=False),
    Column("format", String(16), nullable=False),
    Column("path", Text, nullable=False),
    UniqueConstraint("picture_id", "variant", "format", name="uq_optimized_picture_variant"),
)
translation_keys_table = Table(
    "translation_keys",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("key", String(255), nullable=False, unique=True),
)
translations_table = Table(
    "translations",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "translation_key_id",
        Integer,
        ForeignKey("translation_keys.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("locale", String(8), nullable=False),
    Column("text", Text, nullable=False, default=""),
    UniqueConstraint("translation_key_id", "locale", name="uq_translation_key_locale"),
)
tags_table = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("slug", String(255), nullable=False, unique=True),
)
technologies_table = Table(
    "technologies",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("type", String(32), nullable=False),
    Column("icon_picture_id", Integer, ForeignKey("pictures.id", ondelete="SET NULL")),
    Column(
        "description_translation_key_id",
        Integer,
        ForeignKey("translation_keys.id", ondelete="SET NULL"),
    ),
)
social_media_links_table = Table(
    "social_media_links",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("url", Text, nullable=False),
    Column("icon_svg", Text, nullable=False),
)
videos_table = Table(
    "videos",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("path", Text, nullable=False),
    Column("bunny_video_id", String(64), nullable=False),
    Column("cover_picture_id", Integer, ForeignKey("pictures.id", ondelete="SET NULL")),
    Column("file_size", BigInteger),
    Column("status", String(16), nullable=False, default="pending"),
    Column("visibility", String(16), nullable=False, default="private"),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    Column("updated_at", DateTime, nullable=False, default=utcnow, onupdate=utcnow),
)


def _creation_columns() -> list[Column]:
    return [
        Column("id", Integer, primary_key=True),
        Column("name", String(255), nullable=False),
        Column("logo_id", Integer, ForeignKey("pictures.id", ondelete="SET NULL")),
        Column("cover_image_id", Integer, ForeignKey("pictures.id", ondelete="SET NULL")),
        Column("type", String(32), nullable=False),
        Column("started_at", Date, nullable=False),
        Column("ended_at", Date),
        Column(
            "short_description_translation_key_id",
            Integer,
            ForeignKey("translation_keys.id", ondelete="SET NULL"),
        ),
        Column(
            "full_description_translation_key_id",
            Integer,
            ForeignKey("translation_keys.id", ondelete="SET NULL"),
        ),
        Column("external_url", Text),
        Column("source_code_url", Text),
        Column("featured", Boolean, nullable=False, default=False),
        Column("created_at", DateTime, nullable=False, default=utcnow),
        Column("updated_at", DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    ]


def _pivot(name: str, owner: str, owner_table: str, target: str, target_table: str) -> Table:
    return Table(
        name,
        metadata,
        Column(
            owner,
            Integer,
            ForeignKey(f"{owner_table}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        Column(
            target,
            Integer,
            ForeignKey(f"{target_table}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


creations_table = Table(
    "creations",
    metadata,
    Column("slug", String(255), nullable=False, unique=True),
    *_creation_columns(),
)
creation_drafts_table = Table(
    "creation_drafts",
    metadata,
    Column("slug", String(255), nullable=False),
    Column(
        "original_creation_id",
        Integer,
        ForeignKey("creations.id", ondelete="SET NULL"),
    ),
    *_creation_columns(),
)
creation_tag_table = _pivot("creation_tag", "creation_id", "creations", "tag_id", "tags")
creation_technology_table = _pivot(
    "creation_technology", "creation_id", "creations", "technology_id", "technologies"
)
creation_video_table = _pivot("creation_video", "creation_id", "creations", "video_id", "videos")
creation_draft_tag_table = _pivot(
    "creation_draft_tag", "creation_draft_id", "creation_drafts", "tag_id", "tags"
)
creation_draft_technology_table = _pivot(
    "creation_draft_technology",
    "creation_draft_id",
    "creation_drafts",
    "technology_id",
    "technologies",
)
creation_draft_video_table = _pivot(
    "creation_draft_video", "creation_draft_id", "creation_drafts", "video_id", "videos"
)
screenshots_table = Table(
    "screenshots",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "creation_id",
        Integer,
        ForeignKey("creations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("picture_id", Integer, ForeignKey("pictures.id", ondelete="CASCADE"), nullable=False),
    Column(
        "caption_translation_key_id",
        Integer,
        ForeignKey("translation_keys.id", ondelete="SET NULL"),
    ),
    Column("order", Integer, nullable=False, default=1),
)
creation_draft_screenshots_table = Table(
    "creation_draft_screenshots",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "creation_draft_id",
        Integer,
        ForeignKey("creation_drafts.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("picture_id", Integer, ForeignKey("pictures.id", ondelete="CASCADE"), nullable=False),
    Column(
        "caption_translation_key_id",
        Integer,
        ForeignKey("translation_keys.id", ondelete="SET NULL"),
    ),
    Column("order", Integer, nullable=False, default=1),
)
logged_requests_table = Table(
    "logged_requests",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("method", String(16), nullable=False),
    Column("url", Text, nullable=False),
    Column("path", Text, nullable=False),
    Column("status_code", Integer),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("referer", Text),
    Column("user_id", String(255)),
    Column("created_at", DateTime, nullable=False, default=utcnow, index=True),
    Column("is_bot_by_frequency", Boolean, nullable=False, default=False),
    Column("is_bot_by_user_agent", Boolean, nullable=False, default=False),
    Column("is_bot_by_parameters", Boolean, nullable=False, default=False),
    Column("bot_detection_metadata", JSON),
    Column("bot_analyzed_at", DateTime),
)
ip_address_metadata_table = Table(
    "ip_address_metadata",
    metadata,
    Column("ip_address", String(64), primary_key=True),
    Column("country_code", String(2)),
    Column("lat", Float),
    Column("lon", Float),
    Column("first_seen_at", DateTime),
    Column("last_seen_at", DateTime),
    Column("total_requests", Integer, nullable=False, default=0),
    Column("avg_request_interval", Float),
    Column("last_bot_analysis_at", DateTime),
)
user_agent_metadata_table = Table(
    "user_agent_metadata",
    metadata,
    Column("user_agent", Text, primary_key=True),
    Column("is_bot", Boolean, nullable=False, default=False),
)
notifications_table = Table(
    "notifications",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("type", String(16), nullable=False, default="info"),
    Column("title", String(255), nullable=False),
    Column("message", Text, nullable=False),
    Column("data", JSON),
    Column("read_at", DateTime),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)
