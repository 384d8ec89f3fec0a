from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict
from datetime import datetime


# --------------------------------------------------
# PROFILE PREVIEW (used in connections)
# --------------------------------------------------
class ProfilePreview(BaseModel):
    user_id: str
    full_name: str | None = None
    avatar_url: str | None = None
    role: str | None = None
    current_position: str | None = None
    current_company: str | None = None
    department: str | None = None

    model_config = {"from_attributes": True}


# --------------------------------------------------
# CREATE CONNECTION
# --------------------------------------------------
class ConnectionCreate(BaseModel):
    receiver_id: str

    @field_validator("receiver_id")
    @classmethod
    def validate_receiver(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("receiver_id is required")
        return v


# --------------------------------------------------
# CONNECTION OUT (single connection)
# --------------------------------------------------
class ConnectionOut(BaseModel):
    id: int
    sender_id: str
    receiver_id: str
    status: str
    direction: str
    other_user_id: str
    profile: Optional[ProfilePreview] = None
    created_at: datetime
    updated_at: datetime


# --------------------------------------------------
# CONNECTIONS OVERVIEW
# --------------------------------------------------
class ConnectionMineOut(BaseModel):
    incoming_pending: List[ConnectionOut]
    outgoing_pending: List[ConnectionOut]
    accepted: List[ConnectionOut]
    pending_incoming_count: int


# --------------------------------------------------
# INDEX
# --------------------------------------------------
class ConnectionIndexOut(BaseModel):
    viewer_id: str
    statuses: Dict[str, str]
    pending_incoming_count: int


class ConnectionStatusOut(BaseModel):
    user_id: str
    status: str
    button_state: str
    connection_id: Optional[int] = None
