"""cctracker configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from cctracker/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Transcript storage convention: <claude dir>/projects/<encoded-project>/<session>.jsonl
CLAUDE_DIR = Path(os.getenv("CCTRACKER_CLAUDE_DIR", str(Path.home() / ".claude"))).expanduser()
CLAUDE_PROJECTS_DIR = CLAUDE_DIR / "projects"
TRANSCRIPT_SUFFIX = ".jsonl"

# Database
DB_PATH = Path(os.getenv("CCTRACKER_DB_PATH", str(PROJECT_ROOT / "data" / "usage.db")))

# Aggregation
BLOCK_GAP_SECONDS = _env_int("CCTRACKER_BLOCK_GAP_SECONDS", 1800)

# Startup behaviour
STARTUP_SYNC = _env_bool("CCTRACKER_STARTUP_SYNC", False)
WATCH_ENABLED = _env_bool("CCTRACKER_WATCH_ENABLED", False)

# Server settings
HOST = os.getenv("CCTRACKER_HOST", "127.0.0.1")
PORT = _env_int("CCTRACKER_PORT", 3000)
LOG_LEVEL = os.getenv("CCTRACKER_LOG_LEVEL", "INFO").upper()

# CORS
FRONTEND_ORIGIN = os.getenv("CCTRACKER_FRONTEND_ORIGIN", "http://localhost:5173")
