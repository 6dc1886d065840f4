"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-minilm:latest")  # all-MiniLM-L6-v2
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# Embedding dimension agreed with the vector collection (0 = use probed dimension)
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "384"))

# Vector collection
COLLECTION_NAME = os.getenv("COLLECTION_NAME", "chatbot_collection")
VECTOR_INDEX_DIR = Path(os.getenv("VECTOR_INDEX_DIR", str(DATA_DIR / "vectors")))

# Chat / retrieval parameters
DEFAULT_MAX_RESULTS = int(os.getenv("DEFAULT_MAX_RESULTS", "5"))
MAX_RESULTS_LIMIT = int(os.getenv("MAX_RESULTS_LIMIT", "20"))
MAX_QUERY_LENGTH = int(os.getenv("MAX_QUERY_LENGTH", "4000"))
MAX_CONTEXT_CHARS = int(os.getenv("MAX_CONTEXT_CHARS", "4000"))
# Unset = rank only, no absolute cut-off
_threshold = os.getenv("SIMILARITY_THRESHOLD")
SIMILARITY_THRESHOLD = float(_threshold) if _threshold else None

# Per-call deadlines in seconds
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "15.0"))
VECTOR_STORE_TIMEOUT = float(os.getenv("VECTOR_STORE_TIMEOUT", "10.0"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60.0"))
INDEX_CALL_TIMEOUT = float(os.getenv("INDEX_CALL_TIMEOUT", "30.0"))

# Blog listing
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# Database
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "content.sqlite")))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
