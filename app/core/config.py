import os
from dotenv import load_dotenv

load_dotenv()

# -----------------------
# Database Config
# -----------------------
DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()

if DB_TYPE == "postgres":
    DATABASE_URL = os.getenv("DATABASE_URL")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL is required for Postgres setup")
elif DB_TYPE == "sqlite":
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./finedine.db")
else:
    raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")

# -----------------------
# JWT Config
# -----------------------
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError("JWT_SECRET environment variable must be set")

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# -----------------------
# Ledger / order tuning
# -----------------------
COUPON_CODE_MAX_ATTEMPTS = int(os.getenv("COUPON_CODE_MAX_ATTEMPTS", "5"))
OPTIMISTIC_RETRY_ATTEMPTS = int(os.getenv("OPTIMISTIC_RETRY_ATTEMPTS", "3"))
CLAIM_REWARD_POINTS = int(os.getenv("CLAIM_REWARD_POINTS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
