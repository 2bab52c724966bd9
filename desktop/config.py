# desktop/config.py
# Costanti del client desktop. Solo API base e secret della cache
# sono sovrascrivibili da env; la cartella della cache no.
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

API_BASE = os.getenv("LICENSE_API_BASE", "http://localhost:8000").rstrip("/")
CACHE_SECRET = os.getenv("LICENSE_CACHE_SECRET", "wabsender-local-cache-change-me")
APP_VERSION = os.getenv("APP_VERSION", "dev")

APP_DIR_NAME = "WABSender"
CACHE_FILE_NAME = "license.dat"

HEARTBEAT_INTERVAL = timedelta(hours=24)
HEARTBEAT_INITIAL_DELAY_SECONDS = 5.0
OFFLINE_GRACE_PERIOD = timedelta(days=3)
HTTP_TIMEOUT_SECONDS = 12.0
