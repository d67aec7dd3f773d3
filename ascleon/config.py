"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Gemini configuration
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemini-2.5-flash")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-004")
GEMINI_TIMEOUT = float(os.getenv("GEMINI_TIMEOUT", "60.0"))
GEMINI_MAX_RETRIES = int(os.getenv("GEMINI_MAX_RETRIES", "0"))    # 0 = single attempt
GEMINI_RETRY_BACKOFF = float(os.getenv("GEMINI_RETRY_BACKOFF", "0.5"))  # seconds, doubled per retry

# Storage backend: "sqlite" (local FAISS search) or "supabase" (pgvector RPC)
STORE_BACKEND = os.getenv("STORE_BACKEND", "sqlite")
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "ascleon.sqlite")))
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_TIMEOUT = float(os.getenv("SUPABASE_TIMEOUT", "30.0"))

# RAG parameters (word-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "800"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
MEDICAL_MATCH_THRESHOLD = float(os.getenv("MEDICAL_MATCH_THRESHOLD", "0.7"))
EMERGENCY_MATCH_THRESHOLD = float(os.getenv("EMERGENCY_MATCH_THRESHOLD", "0.5"))
INGEST_CONCURRENCY = int(os.getenv("INGEST_CONCURRENCY", "1"))    # 1 = sequential

# Request limits
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
MAX_QUESTION_CHARS = int(os.getenv("MAX_QUESTION_CHARS", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
