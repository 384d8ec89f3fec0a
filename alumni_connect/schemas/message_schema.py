from pydantic import BaseModel
from datetime import datetime


class MessageCreate(BaseModel):
    content: str


class MessageOut(BaseModel):
    id: int
    connection_id: int
    sender_id: str
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}
