from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from alumni_connect.config import settings


def make_engine(url: str):
    connect_args = {}

    # SQLite connections are shared with the threadpool that runs sync routes
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# --------------------------------------------------
# DB dependency
# --------------------------------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
