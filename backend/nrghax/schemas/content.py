from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class LevelCreate(BaseModel):
    id: str
    name: str
    slug: str
    position: Optional[int] = None


class LevelUpdate(BaseModel):
    name: Optional[str] = None
    position: Optional[int] = None


class HackCreate(BaseModel):
    id: str
    name: str
    slug: str
    level_id: Optional[str] = None
    is_required: bool = True
    position: Optional[int] = None


class HackUpdate(BaseModel):
    name: Optional[str] = None
    level_id: Optional[str] = None
    is_required: Optional[bool] = None


class RoutineCreate(BaseModel):
    """创建 Routine，hack_ids 的顺序即播放顺序"""
    id: str
    name: str
    slug: str
    hack_ids: List[str] = Field(default_factory=list)


class RoutineUpdate(BaseModel):
    name: Optional[str] = None


class HackOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    level_id: Optional[str] = None
    is_required: bool = True
