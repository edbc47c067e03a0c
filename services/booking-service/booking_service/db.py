from shared.database import get_engine, get_session

from .config import DATABASE_URL, DATABASE_ECHO

if not DATABASE_URL:
    raise RuntimeError("BOOKING_DB environment variable is not set")

engine = get_engine(DATABASE_URL, echo=DATABASE_ECHO)

SessionLocal = get_session(engine)
