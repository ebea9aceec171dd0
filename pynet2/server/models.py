"""Pydantic models for request and response bodies."""
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    message: Optional[str] = None
    error: Optional[str] = None


class SiteSummary(BaseModel):
    """Site identity and refresh state, as listed by /sites."""
    id: int
    name: str
    base_url: str
    last_polled: Optional[datetime] = None
    up_to_date: bool = False


class UpdateUserData(BaseModel):
    FirstName: str = Field(min_length=1)
    LastName: str = Field(min_length=1)
    AccessLevel: int = 0


class SequenceDoorData(BaseModel):
    door: Union[int, str]
    time: str = "0s"  # duration string, e.g. "5s" or "1m30s"
