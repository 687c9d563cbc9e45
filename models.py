# models.py — pydantic models for the edit descriptor and job status

from datetime import datetime
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

VARIANTS = ("trim", "vertical", "intro", "zoom_in", "zoom_out")

class VideoEdit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., min_length=1)
    custom_name: str = Field("", alias="customName")
    trim_start: float = Field(..., alias="trimStart", ge=0)
    trim_stop: float = Field(..., alias="trimStop", ge=0)
    point_in_time: Optional[float] = Field(None, alias="pointInTime", ge=0)
    duration: Optional[float] = None
    video_width: int = Field(..., alias="videoWidth", gt=0)
    video_height: int = Field(..., alias="videoHeight", gt=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.trim_stop <= self.trim_start:
            raise ValueError(f"trimStop ({self.trim_stop}) must be greater than trimStart ({self.trim_start})")
        if self.point_in_time is not None and not (self.trim_start <= self.point_in_time <= self.trim_stop):
            raise ValueError("pointInTime must lie between trimStart and trimStop")
        return self

    @property
    def clip_duration(self) -> float:
        return self.trim_stop - self.trim_start

    @property
    def midpoint(self) -> float:
        return self.trim_start + self.clip_duration / 2

    @property
    def split_point(self) -> float:
        """Zoom-in split; falls back to the midpoint when the client sent none."""
        return self.midpoint if self.point_in_time is None else self.point_in_time

class EditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    all_videos_title: str = Field("", alias="allVideosTitle")
    videos: List[VideoEdit] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_list(cls, data: Any):
        # early descriptors were a plain list of records without a title
        if isinstance(data, list):
            return {"allVideosTitle": "", "videos": data}
        return data

class PipelineOptions(BaseModel):
    produce_vertical: bool = True
    produce_screenshots: bool = True
    remove_source_files: bool = False
    vertical_suffix: str = ""
    overlay_preview: bool = False
    music_path: Optional[Path] = None

class JobStatus(BaseModel):
    job_id: str
    variant: Literal["trim", "vertical", "intro", "zoom_in", "zoom_out"]
    state: Literal["queued", "running", "done", "failed"] = "queued"
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    outputs: List[str] = Field(default_factory=list)
    error: Optional[str] = None
