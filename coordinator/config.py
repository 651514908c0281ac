"""
Runtime configuration.

Values come from the environment, with a `.env` file at the project root
loaded first when present.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

project_root = Path(__file__).resolve().parent.parent
load_dotenv(project_root / ".env")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{project_root / 'coordinator.db'}"  # Default to SQLite
)
DB_ECHO = _env_bool("DB_ECHO", False)  # Set DB_ECHO=true for SQL logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Event processing
EVENT_LOOKBACK_HOURS = int(os.getenv("EVENT_LOOKBACK_HOURS", "72"))

# Escalation sweep
SWEEP_BATCH_SIZE = int(os.getenv("SWEEP_BATCH_SIZE", "500"))
COORDINATION_SWEEP_INTERVAL_MINUTES = int(os.getenv("COORDINATION_SWEEP_INTERVAL_MINUTES", "60"))
COORDINATION_SCHEDULER_ENABLED = _env_bool("COORDINATION_SCHEDULER_ENABLED", True)
