import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./speddy.db")

# Database pool settings (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Supabase-issued access tokens (HS256, signed with the project JWT secret)
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

# Orphaned instance cleanup: "queue" (ARQ job), "inline" (background task) or "disabled"
ORPHAN_CLEANUP_MODE = os.getenv("ORPHAN_CLEANUP_MODE", "queue").lower()

# School year ends June 30 unless configured otherwise
SCHOOL_YEAR_END_MONTH = int(os.getenv("SCHOOL_YEAR_END_MONTH", "6"))
SCHOOL_YEAR_END_DAY = int(os.getenv("SCHOOL_YEAR_END_DAY", "30"))

# Page size used when scanning every template (batch instance generation)
TEMPLATE_PAGE_SIZE = int(os.getenv("TEMPLATE_PAGE_SIZE", "1000"))

# Operations slower than this (seconds) are logged as warnings
SLOW_OPERATION_THRESHOLD = float(os.getenv("SLOW_OPERATION_THRESHOLD", "2.0"))

# Frontend origins allowed by CORS
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
