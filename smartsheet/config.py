import os
import sys
from dotenv import load_dotenv

def get_app_data_dir() -> str:
    """Return a user-writable data directory for SmartSheet (created if absent)."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.expanduser("~")
    elif sys.platform == "darwin":
        base = os.path.expanduser("~/Library/Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    app_dir = os.path.join(base, "SmartSheet")
    os.makedirs(app_dir, exist_ok=True)
    return app_dir

def get_resource_path(relative_path: str) -> str:
    """Path of a file shipped inside the package."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), relative_path)

# Load .env from app-data dir first, then fall back to CWD (dev)
load_dotenv(os.path.join(get_app_data_dir(), ".env"))
load_dotenv()

def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"

DB_PATH = os.getenv("SMARTSHEET_DB_PATH") or os.path.join(get_app_data_dir(), "smartsheet.db")

ENABLE_LLM = _env_bool("ENABLE_LLM")
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
LLM_API_KEY = os.getenv("LLM_API_KEY", "")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60.0"))

# Timeout for a full generation pass (seconds). If the active engine
# produces no output within this window, the assistant gives up.
GENERATION_TIMEOUT = float(os.getenv("LLM_GENERATION_TIMEOUT", "120"))

# Default rectangle read by export
SHEET_ROWS = int(os.getenv("SHEET_ROWS", "50"))
SHEET_COLS = int(os.getenv("SHEET_COLS", "15"))

DEBUG_AI = _env_bool("DEBUG_AI")
