"""Application configuration with sensible defaults."""
import logging
import os
from pathlib import Path

import structlog

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DOCQA_DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Database and vector indexes (one FAISS index per embedding dimension)
DB_PATH = DATA_DIR / "docqa.sqlite"
INDEX_DIR = DATA_DIR / "indexes"

# Embedding backend: "local" (sentence-transformers), "ollama" or "gemini"
EMBEDDING_BACKEND = os.getenv("EMBEDDING_BACKEND", "local")
LOCAL_EMBEDDING_MODEL = os.getenv(
    "LOCAL_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
)
OLLAMA_EMBEDDING_MODEL = os.getenv("OLLAMA_EMBEDDING_MODEL", "nomic-embed-text")
GEMINI_EMBEDDING_MODEL = os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004")

# Generation backend: "gemini", "ollama" or "none" (extractive answers only)
GENERATION_BACKEND = os.getenv("GENERATION_BACKEND", "gemini")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
GEMINI_CHAT_MODEL = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.5-flash")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.85"))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "512"))

# Remote services
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60.0"))
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))

# Ingestion (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "800"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "120"))
INGEST_BATCH_SIZE = int(os.getenv("INGEST_BATCH_SIZE", "40"))
INGEST_BATCH_PAUSE = float(os.getenv("INGEST_BATCH_PAUSE", "0.15"))
SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".md")

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RAG_TOP_K", "5"))
CONTEXT_CHAR_BUDGET = int(os.getenv("CONTEXT_CHAR_BUDGET", "9000"))
GENERATION_CONTEXT_LIMIT = int(os.getenv("GENERATION_CONTEXT_LIMIT", "10000"))
CONFIDENCE_MODE = os.getenv("CONFIDENCE_MODE", "top1")  # top1 | mean

# Escalation
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.7"))

# Query API
MAX_QUESTION_LENGTH = int(os.getenv("MAX_QUESTION_LENGTH", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level: str = None) -> None:
    """Configure structured JSON logging for the app and the CLI."""
    logging.basicConfig(format="%(message)s", level=(level or LOG_LEVEL).upper())
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
