import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Database config (defaults allow local run without crashing)
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", 3306))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "courtsplit")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Balance engine tolerances, in currency units / percentage points
    SETTLED_EPSILON = float(os.environ.get("SETTLED_EPSILON", 0.01))
    SPLIT_PERCENT_TOLERANCE = float(os.environ.get("SPLIT_PERCENT_TOLERANCE", 0.5))

config = Config()
