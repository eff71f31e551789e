from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Project root (next to streamlit_app.py)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATABASE_URL = os.getenv("VASTIS_DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'vastis.sqlite'}")

# File storage: one sub-directory per bucket
STORAGE_DIR = Path(os.getenv("VASTIS_STORAGE_DIR", str(PROJECT_ROOT / "storage")))
PUBLIC_BASE_URL = os.getenv("VASTIS_PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
SITE_URL = os.getenv("VASTIS_SITE_URL", "http://localhost:8501").rstrip("/")

# In production: set it in the environment
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

INVITE_EXPIRE_DAYS = int(os.getenv("INVITE_EXPIRE_DAYS", "7"))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "5"))

# Recipient of the platform share of every payment
PLATFORM_ADMIN_ID = int(os.getenv("PLATFORM_ADMIN_ID", "1"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
