import os

from dotenv import load_dotenv

load_dotenv()

# --- STORAGE ---
DATABASE_URL = os.getenv("SCHEDULER_DATABASE_URL", "sqlite:///scheduler.db")
DB_ECHO = os.getenv("SCHEDULER_DB_ECHO", "false").lower() == "true"

# --- ORGANIZATION DEFAULTS ---
# Used only when an organization does not override them in its context
DEFAULT_HOLD_MINUTES = int(os.getenv("SCHEDULER_HOLD_MINUTES", "5"))
DEFAULT_SLOT_INTERVAL = int(os.getenv("SCHEDULER_SLOT_INTERVAL", "30"))
DEFAULT_SESSION_MINUTES = int(os.getenv("SCHEDULER_SESSION_MINUTES", "60"))

# --- RULE ANALYSIS ---
DUPLICATE_SIMILARITY_THRESHOLD = float(os.getenv("SCHEDULER_DUPLICATE_THRESHOLD", "0.85"))

LOG_LEVEL = os.getenv("SCHEDULER_LOG_LEVEL", "INFO")
