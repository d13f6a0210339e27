from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class WorldRecord(BaseModel):
    filename: str
    display_name: str
    size_bytes: int
    formatted_size: str
    modified_at: datetime
    formatted_modified: str
    download_count: int = 0
    category: str
    category_name: str
    group: str
    version: Optional[str] = None
    description: str
    tags: List[str] = Field(default_factory=list)
    download_url: str
    naming: Literal["full", "short", "nonconforming"]


class Statistics(BaseModel):
    total_worlds: int = 0
    total_size_bytes: int = 0
    total_downloads: int = 0
    categories: Dict[str, int] = Field(default_factory=dict)


class WorldsListData(BaseModel):
    worlds: List[WorldRecord]
    statistics: Statistics
    generated_at: datetime
    cache_expires: datetime


class WorldsListResponse(BaseModel):
    success: bool = True
    data: WorldsListData


class WorldInfoData(BaseModel):
    world: WorldRecord


class WorldInfoResponse(BaseModel):
    success: bool = True
    data: WorldInfoData


class StatsData(BaseModel):
    statistics: Statistics


class StatsResponse(BaseModel):
    success: bool = True
    data: StatsData


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    reset_time: Optional[int] = None
