from fastapi import APIRouter, BackgroundTasks, Depends

from alumni_connect.auth.supabase_auth import get_current_user
from alumni_connect.job_notifications import notify_students_in_background
from alumni_connect.schemas.notification_schema import (
    JobNotificationQueued,
    JobNotificationRequest,
)


router = APIRouter(prefix="/notifications", tags=["Notifications"])


# --------------------------------------------------
# JOB POSTED → EMAIL STUDENTS
# --------------------------------------------------
@router.post("/job-posted", response_model=JobNotificationQueued, status_code=202)
def job_posted(
    payload: JobNotificationRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
):
    # Fire and forget: delivery runs after the response is sent
    background_tasks.add_task(notify_students_in_background, payload.model_dump())

    return {
        "success": True,
        "queued": True,
        "message": "Students will be notified",
    }
