from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from portfolio.enums import CreationType, TechnologyType, VideoStatus, VideoVisibility


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TranslationOut(BaseModel):
    id: int
    translation_key_id: int
    key: Optional[str] = None
    locale: str
    text: str


class TranslationCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=255, description="Translation key")
    locale: str = Field(..., description="Locale code")
    text: str = Field(..., description="Display text")


class TranslationUpdate(BaseModel):
    key: Optional[str] = Field(None, max_length=255, description="Translation key")
    translation_key_id: Optional[int] = Field(None, description="Translation key id")
    locale: str = Field(..., description="Locale code")
    text: str = Field(..., description="Display text")

    @model_validator(mode="after")
    def _require_key_reference(self) -> "TranslationUpdate":
        if not (self.key or self.translation_key_id):
            raise ValueError("Either key or translation_key_id is required.")
        return self


class DashboardTranslationUpdate(BaseModel):
    text: str


class TranslationBatchRequest(BaseModel):
    translation_key_ids: List[int] = Field(..., min_length=1)


class TranslationBatchResult(BaseModel):
    queued: int
    skipped: int


class TagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TagOut(TagIn):
    id: int
    slug: str


class TechnologyIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: TechnologyType
    icon_picture_id: int
    locale: str = Field(..., pattern="^(en|fr)$")
    description: str


class TechnologyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[TechnologyType] = None
    icon_picture_id: Optional[int] = None
    locale: Optional[str] = Field(None, pattern="^(en|fr)$")
    description: Optional[str] = None

    @model_validator(mode="after")
    def _locale_with_description(self) -> "TechnologyUpdate":
        if self.description is not None and not self.locale:
            raise ValueError("The locale field is required when description is present.")
        return self


class SocialMediaLinkIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    icon_svg: str = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://", "mailto:")):
            raise ValueError("The url must be a valid URL.")
        return value


class SocialMediaLinkOut(SocialMediaLinkIn):
    id: int


class VideoIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    bunny_video_id: str = Field(..., min_length=1, max_length=64)
    cover_picture_id: Optional[int] = None
    visibility: VideoVisibility = VideoVisibility.PRIVATE


class VideoOut(BaseModel):
    id: int
    name: str
    path: str
    bunny_video_id: str
    cover_picture_id: Optional[int] = None
    file_size: Optional[int] = None
    status: VideoStatus
    visibility: VideoVisibility
    created_at: datetime
    updated_at: datetime


class CreationDraftIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255)
    type: CreationType
    started_at: date
    ended_at: Optional[date] = None
    logo_id: Optional[int] = None
    cover_image_id: Optional[int] = None
    short_description_translation_key_id: Optional[int] = None
    full_description_translation_key_id: Optional[int] = None
    external_url: Optional[str] = None
    source_code_url: Optional[str] = None
    featured: bool = False
    original_creation_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "CreationDraftIn":
        if self.ended_at is not None and self.ended_at < self.started_at:
            raise ValueError("The ended_at date must be after or equal to started_at.")
        return self


class DraftScreenshotIn(BaseModel):
    picture_id: int
    caption_translation_key_id: Optional[int] = None


class DraftScreenshotUpdate(BaseModel):
    caption_translation_key_id: Optional[int] = None


class ScreenshotOut(BaseModel):
    id: int
    picture_id: int
    caption_translation_key_id: Optional[int] = None
    order: int
    creation_draft_id: Optional[int] = None
    creation_id: Optional[int] = None


class RelationAttach(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class MarkAsBotRequest(BaseModel):
    request_ids: List[int] = Field(..., min_length=1)


class MarkAsBotResponse(BaseModel):
    message: str
    updated_count: int
    requested_ids: List[int]


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationMarkRead(BaseModel):
    ids: Optional[List[int]] = None
