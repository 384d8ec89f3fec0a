import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alumni_connect.database import Base, engine
from alumni_connect.config import settings
from alumni_connect.core.errors import ConnectError

# Import models so SQLAlchemy registers tables
from alumni_connect.models import (
    connection,
    message,
    profile,
)

# Routers
from alumni_connect.routers import (
    connection_router,
    message_router,
    notification_router,
)

# -----------------------
# LOGGING
# -----------------------
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# -----------------------
# CREATE APP
# -----------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Connections and realtime chat between students and alumni.",
    version="1.0.0",
)
logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENV})")

# -----------------------
# CORS (ONLY ONCE)
# -----------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------
# DATABASE TABLES
# -----------------------
Base.metadata.create_all(bind=engine)


# -----------------------
# DOMAIN ERRORS
# -----------------------
@app.exception_handler(ConnectError)
async def handle_connect_error(request: Request, exc: ConnectError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# -----------------------
# ROUTES
# -----------------------
app.include_router(connection_router.router)
app.include_router(message_router.router)
app.include_router(notification_router.router)


# -----------------------
# HEALTH CHECK
# -----------------------
@app.get("/")
def root():
    return {"message": f"{settings.PROJECT_NAME} is running!"}
