from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Tier(str, Enum):
    FREE = 'free'
    PREMIUM = 'premium'


class ItemType(str, Enum):
    PHOTO = 'photo'
    VIDEO = 'video'


class SubscriptionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: Tier
    refreshed_at: datetime


class VaultCreate(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    description: str = ''
    color: str = Field(default='#6366f1', max_length=32)


class VaultUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=32)


class PhotoMetadata(BaseModel):
    type: Literal['photo'] = 'photo'
    name: str = Field(min_length=1, max_length=256)
    filename: str = Field(default='photo.jpg', min_length=1, max_length=256)
    resolution: Optional[str] = None
    format: Optional[str] = None


class VideoMetadata(BaseModel):
    type: Literal['video'] = 'video'
    name: str = Field(min_length=1, max_length=256)
    filename: str = Field(default='video.mp4', min_length=1, max_length=256)
    duration_seconds: int = Field(ge=0)
    resolution: str
    format: str


ItemMetadata = Annotated[Union[PhotoMetadata, VideoMetadata], Field(discriminator='type')]

item_metadata_adapter = TypeAdapter(ItemMetadata)


def parse_item_metadata(data):
    """Validate a loose payload into PhotoMetadata or VideoMetadata."""
    if isinstance(data, (str, bytes)):
        return item_metadata_adapter.validate_json(data)
    return item_metadata_adapter.validate_python(data)


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=256)


class VaultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    description: str
    color: str
    created_at: datetime
    updated_at: datetime
    item_count: int = 0
    last_accessed: datetime
    is_locked: bool = False


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vault_id: str
    type: ItemType
    name: str
    filename: str
    blob_ref: str
    size_bytes: int
    created_at: datetime
    duration_seconds: Optional[int] = None
    resolution: Optional[str] = None
    format: Optional[str] = None
    formatted_duration: Optional[str] = None
    formatted_size: str


class UsageSnapshot(BaseModel):
    photo_count: int = 0
    video_count: int = 0
    vault_count: int = 0
    total_bytes: int = 0

    @property
    def item_count(self):
        return self.photo_count + self.video_count


class QuotaDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None


class CaptureEvent(BaseModel):
    """Completed-capture event emitted by the capture device."""
    data: bytes
    duration_seconds: int = Field(default=0, ge=0)
    format: Optional[str] = None
    resolution: Optional[str] = None
