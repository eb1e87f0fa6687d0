from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class Platform(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TWITTER = "twitter"


class MediaLabel(str, Enum):
    HD = "HD"
    P720 = "720p"
    SD = "SD"
    VIDEO = "Video"


class MediaCandidate(BaseModel):
    url: str
    label: MediaLabel = MediaLabel.VIDEO
    bitrate: Optional[int] = None


class ExtractionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    platform: Platform
    title: str = ""
    thumb: str = ""
    urls: List[MediaCandidate] = []
    best_url: Optional[str] = Field(None, alias="bestUrl")


class ExtractResponse(ExtractionResult):
    ok: bool = True


class ErrorResponse(BaseModel):
    ok: Optional[bool] = None
    error: str
