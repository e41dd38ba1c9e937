from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional


class _Gated(BaseModel):
    # Stored tiers are free-form; unknown ones are locked by the access policy
    required_plan: str = "none"

    @field_validator("required_plan", mode="before")
    @classmethod
    def default_plan(cls, v: Optional[str]) -> str:
        return v or "none"


class Lesson(_Gated):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    title: str
    description: str = ""
    category: str = "geral"
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_premium: bool = False
    created_at: Optional[str] = None


class LessonView(Lesson):
    locked: bool = False


class Tool(_Gated):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    description: str = ""
    category: str = "geral"
    version: Optional[str] = None
    image_url: Optional[str] = None
    download_url: Optional[str] = None
    created_at: Optional[str] = None


class ToolView(_Gated):
    id: str
    name: str
    description: str
    category: str
    version: Optional[str] = None
    image_url: Optional[str] = None
    locked: bool
