import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {"1", "true", "yes"}


MODEL_NAME = os.getenv("COMPY_MODEL", "gpt-4o")
MAX_TOOL_ROUNDS = int(os.getenv("COMPY_MAX_TOOL_ROUNDS", "3")) # Tool-call rounds allowed per request
MAX_HISTORY_MESSAGES = int(os.getenv("COMPY_MAX_HISTORY_MESSAGES", "20")) # Most recent messages sent to the model
REQUEST_TIMEOUT_SECONDS = float(os.getenv("COMPY_REQUEST_TIMEOUT", "30")) # Wall-clock budget for a whole request

# Rate limiting
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "20"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
RATE_LIMIT_FAIL_OPEN = _env_bool("RATE_LIMIT_FAIL_OPEN", False)
RATE_LIMIT_KEY_PREFIX = "compy:ratelimit"
REDIS_URL = os.getenv("REDIS_URL", "") # Empty means an in-process store

# Search backend (Typesense)
TYPESENSE_URL = os.getenv("TYPESENSE_URL", "http://localhost:8108").rstrip("/")
TYPESENSE_API_KEY = os.getenv("TYPESENSE_API_KEY", "")
TYPESENSE_COLLECTION = os.getenv("TYPESENSE_COLLECTION", "products2")
SEARCH_TIMEOUT_SECONDS = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "10"))
SEARCH_PAGE_SIZE = 10
SEARCH_QUERY_BY = "title,repmodel,brand"
SEARCH_QUERY_BY_WEIGHTS = "4,2,1" # Title outweighs model and brand
SEARCH_SORT_BY = "top:desc,percent_offer:desc" # Promoted first, then biggest discount
ABORT_ON_SEARCH_UNAVAILABLE = _env_bool("ABORT_ON_SEARCH_UNAVAILABLE", False)

# Result compression
FEATURE_PREFIX = "f."
UNSPECIFIED_VALUES = frozenset({"NO ESPECIFICA"})
CURRENCY_SYMBOL = "S/"

# Price verdict thresholds, percent above the historical minimum
WAIT_THRESHOLD_PERCENT = 30.0
CONSIDER_THRESHOLD_PERCENT = 10.0

# HTTP surface
ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "https://compy.cueva.io",
    "https://dev.compy.pe",
    "https://compy.pe",
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
