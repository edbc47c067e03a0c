import os

SERVICE_NAME = "booking-service"

DATABASE_URL = os.getenv("BOOKING_DB")
DATABASE_ECHO = (os.getenv("BOOKING_DB_ECHO") or "false").lower() in ("1", "true", "yes")

RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want events
REDIS_URL = os.getenv("REDIS_URL")  # optional; consumer dedupe is skipped without it

MIN_LEAD_HOURS = float(os.getenv("BOOKING_MIN_LEAD_HOURS") or "2")
MIN_DURATION_HOURS = float(os.getenv("BOOKING_MIN_DURATION_HOURS") or "1")
MAX_DURATION_HOURS = float(os.getenv("BOOKING_MAX_DURATION_HOURS") or "8")

SYSTEM_ACTOR_ID = os.getenv("BOOKING_SYSTEM_ACTOR_ID") or "system"

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()
