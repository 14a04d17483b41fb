"""
Application settings, read from the environment (and an optional .env file).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path(os.getenv("FAMILY_TREE_DATA_DIR", "data"))
EXPORTS_DIR = Path(os.getenv("FAMILY_TREE_EXPORTS_DIR", "exports"))

MAX_GEDCOM_BYTES = int(os.getenv("FAMILY_TREE_MAX_GEDCOM_BYTES", str(50 * 1024 * 1024)))
GEDCOM_EXTENSIONS = {".ged", ".gedcom"}
GEDCOM_SOURCE_NAME = os.getenv("FAMILY_TREE_GEDCOM_SOURCE", "FamilyTreeBuilder")

DEFAULT_LOCALE = os.getenv("FAMILY_TREE_LOCALE", "en")
LOG_LEVEL = os.getenv("FAMILY_TREE_LOG_LEVEL", "INFO").upper()

SESSION_MAX_AGE = int(os.getenv("FAMILY_TREE_SESSION_MAX_AGE", str(86400 * 7)))
SESSION_CLEANUP_INTERVAL = int(os.getenv("FAMILY_TREE_SESSION_CLEANUP_INTERVAL", "3600"))
MAX_SESSIONS = int(os.getenv("FAMILY_TREE_MAX_SESSIONS", "100"))
MAX_HISTORY = int(os.getenv("FAMILY_TREE_MAX_HISTORY", "50"))
