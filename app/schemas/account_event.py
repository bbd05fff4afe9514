"""
Pydantic schemas for the account event feed.
"""

from pydantic import BaseModel, Field, UUID4
from typing import Any, Dict, Optional
from datetime import datetime


class AccountEventResponse(BaseModel):
    id: UUID4
    event_type: str
    device_session_id: Optional[UUID4]
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True
