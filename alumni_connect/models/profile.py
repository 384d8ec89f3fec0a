from datetime import datetime

from sqlalchemy import Column, String, DateTime

from alumni_connect.database import Base


STUDENT = "student"
ALUMNI = "alumni"


class Profile(Base):
    """
    Directory profile. Owned by the profile service; this backend only
    reads it for previews and notification recipients.
    """

    __tablename__ = "profiles"

    # Matches the Supabase auth user id
    user_id = Column(String, primary_key=True, index=True)

    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)

    # student | alumni
    role = Column(String, nullable=False, index=True)

    avatar_url = Column(String, nullable=True)
    current_position = Column(String, nullable=True)
    current_company = Column(String, nullable=True)
    department = Column(String, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
