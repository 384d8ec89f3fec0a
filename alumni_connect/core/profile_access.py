from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from alumni_connect.models.profile import Profile, STUDENT


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    """
    Profiles are owned by the profile service, so a missing row is normal
    and callers render the connection without a preview.
    """
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def get_profiles(db: Session, user_ids: Iterable[str]) -> Dict[str, Profile]:
    ids = set(user_ids)
    if not ids:
        return {}
    rows = db.query(Profile).filter(Profile.user_id.in_(ids)).all()
    return {p.user_id: p for p in rows}


def student_emails(db: Session) -> List[str]:
    rows = (
        db.query(Profile.email)
        .filter(Profile.role == STUDENT, Profile.email.isnot(None))
        .all()
    )
    return sorted({email for (email,) in rows if email})
