import html
import logging

import requests
from sqlalchemy.orm import Session

from alumni_connect.config import settings
from alumni_connect.core.profile_access import student_emails
from alumni_connect.database import SessionLocal

logger = logging.getLogger(__name__)


def build_job_email(job: dict) -> dict:
    """
    Subject and HTML body for a new job / internship announcement.
    """
    job_type = "Internship" if job.get("type") == "internship" else "Job"
    location = job.get("location")
    location_text = f" in {html.escape(location)}" if location else ""

    title = html.escape(job["title"])
    company = html.escape(job["company"])

    body = (
        "<!DOCTYPE html>"
        "<html><body>"
        f"<h1>New {job_type} Opportunity</h1>"
        f"<h2>{title}</h2>"
        f"<p><strong>{company}</strong>{location_text}</p>"
        f"<p>{html.escape(job['description'])}</p>"
        f"<p>Posted by {html.escape(job['author_name'])}</p>"
        "</body></html>"
    )

    return {
        "subject": f"New {job_type} Opportunity: {job['title']} at {job['company']}",
        "html": body,
    }


def send_email(recipients: list[str], subject: str, body: str) -> bool:
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set, skipping job notification email")
        return False

    response = requests.post(
        settings.RESEND_API_URL,
        headers={
            "Authorization": f"Bearer {settings.RESEND_API_KEY}",
            "Content-Type": "application/json",
        },
        json={
            "from": settings.NOTIFICATION_FROM,
            "to": recipients,
            "subject": subject,
            "html": body,
        },
        timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return True


def notify_students_of_job(db: Session, job: dict) -> int:
    """
    Email every student about a new posting. Returns the number of
    recipients the email was sent to; failures are logged, never raised,
    so posting a job is never blocked by the mail provider.
    """
    try:
        emails = student_emails(db)
    except Exception:
        logger.exception("Failed to load student emails for job notification")
        return 0

    if not emails:
        logger.info("No student emails found, nothing to notify")
        return 0

    message = build_job_email(job)
    logger.info(f"Sending job notification to {len(emails)} students")

    try:
        sent = send_email(emails, message["subject"], message["html"])
    except requests.RequestException as e:
        logger.error(f"Job notification delivery failed: {e}")
        return 0

    return len(emails) if sent else 0


def notify_students_in_background(job: dict) -> int:
    """Entry point for FastAPI background tasks; owns its DB session."""
    db = SessionLocal()
    try:
        return notify_students_of_job(db, job)
    finally:
        db.close()
