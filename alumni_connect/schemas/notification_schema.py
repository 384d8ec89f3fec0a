from pydantic import BaseModel
from typing import Optional


class JobNotificationRequest(BaseModel):
    job_id: Optional[str] = None
    title: str
    company: str
    description: str
    location: Optional[str] = None
    # job | internship
    type: str = "job"
    author_name: str


class JobNotificationQueued(BaseModel):
    success: bool
    queued: bool
    message: str
