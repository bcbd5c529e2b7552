from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

REQUEST_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(default_factory=lambda: str(uuid4()), alias="requestId", pattern=REQUEST_ID_PATTERN)
    surah: int = Field(ge=1, le=114)
    ayah_start: int = Field(ge=1)
    ayah_end: int = Field(ge=1)
    reciter_id: str = Field(min_length=1)
    translation_id: str = Field(default="en.sahih", min_length=1)
    background_url: str | None = "default"
    resolution: int = Field(default=720, ge=360, le=1080)
    platform: Literal["reel", "youtube"] = "reel"

    @field_validator("reciter_id", "translation_id")
    @classmethod
    def strip_identifier(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Edition identifier is required")
        return value

    @field_validator("background_url")
    @classmethod
    def validate_background(cls, value: str | None) -> str | None:
        if value is None or value == "default":
            return value
        if not value.startswith(("http://", "https://")):
            raise ValueError('Background URL must be a valid URL or "default"')
        return value

    @model_validator(mode="after")
    def validate_range(self) -> "GenerationRequest":
        if self.ayah_end < self.ayah_start:
            raise ValueError("End Ayah must be greater than or equal to Start Ayah")
        return self


class CanvasSize(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @classmethod
    def for_request(cls, resolution: int, platform: str) -> "CanvasSize":
        if platform == "reel":
            height = int(resolution * 16 / 9)
        else:
            height = int(resolution * 9 / 16)
        return cls(width=resolution - resolution % 2, height=height - height % 2)


class SubtitleStyle(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    source_font_path: str | None = None
    translation_font_path: str | None = None
    source_font_size: int = Field(gt=0)
    translation_font_size: int = Field(gt=0)
    source_color: tuple[int, int, int, int] = (255, 255, 255, 255)
    translation_color: tuple[int, int, int, int] = (255, 255, 255, 255)
    outline_color: tuple[int, int, int, int] = (0, 0, 0, 255)


class Verse(BaseModel):
    number: int = Field(ge=1)
    source_text: str
    translation_text: str
    audio_source: str
    duration: float | None = Field(default=None, ge=0)
    start_time: float | None = Field(default=None, ge=0)


class TimelineEntry(BaseModel):
    verse: Verse
    start_time: float = Field(ge=0)
    end_time: float = Field(ge=0)


class ProgressStage(str, Enum):
    starting = "starting"
    fetching = "fetching"
    downloading = "downloading"
    processing_audio = "processing_audio"
    rendering = "rendering"
    completed = "completed"
    failed = "failed"


TERMINAL_STAGES = {ProgressStage.completed, ProgressStage.failed}


class ProgressRecord(BaseModel):
    request_id: str
    stage: ProgressStage
    percentage: int = Field(ge=0, le=100)
    terminal: bool = False
    error_message: str | None = None

    def event(self) -> dict:
        if self.error_message is not None:
            return {"percentage": self.percentage, "error": self.error_message}
        return {"percentage": self.percentage, "status": self.stage.value}


class PushKeys(BaseModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class PushSubscription(BaseModel):
    endpoint: HttpUrl
    keys: PushKeys


class SubscribeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId", pattern=REQUEST_ID_PATTERN)
    subscription: PushSubscription


class GenerationResult(BaseModel):
    status: Literal["started", "already_processing", "completed"]
    request_id: str
    output_path: str | None = None
    verse_count: int = 0
    total_duration: float = 0.0
