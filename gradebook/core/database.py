from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from gradebook.core.config import settings

def _engine_args(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    args = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session sees an empty database
        args["poolclass"] = StaticPool
    return args

engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True, **_engine_args(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
