from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class SettingOut(BaseModel):
    key: str
    value: str
    description: Optional[str] = None
    created_on: Optional[datetime] = None
    updated_by: Optional[int] = None
    updated_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class SettingCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=500)
    user_id: Optional[int] = None


class SettingPatch(BaseModel):
    key: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1, max_length=200)
    user_id: Optional[int] = None
