"""
Application configuration.
Values come from the environment (or a local .env file in development).
"""
import os
from dotenv import load_dotenv

load_dotenv()  # loads .env in local dev; no effect in Docker if env vars provided

# --- Database ---
DATABASE_URL = os.getenv(
    "DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/docchat"
)

# --- OpenAI ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_KEY_PLACEHOLDER = "your_openai_api_key_here"
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
EMBED_MODEL = os.getenv("EMBED_MODEL", "text-embedding-3-small")
EMBEDDING_DIM = 1536

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
JSON_LOGS = os.getenv("JSON_LOGS", "false").lower() in ("1", "true", "yes")

# --- Upload limits ---
ALLOWED_MIME_TYPES = ("application/pdf", "text/plain", "text/markdown")
MIN_FILE_SIZE_BYTES = 1024  # 1 KB
MAX_FILE_SIZE_BYTES = 1 * 1024 * 1024  # 1 MB

# --- Processing ---
# "simple" stores the whole text as one chunk without embedding,
# "full" chunks and embeds it.
PROCESSING_MODE = os.getenv("PROCESSING_MODE", "simple").lower()
PROCESSING_TIMEOUT_SECONDS = float(os.getenv("PROCESSING_TIMEOUT_SECONDS", "60"))

CHUNK_SIZE = 200
CHUNK_OVERLAP = 30
MIN_CHUNK_LENGTH = 15
MAX_TEXT_LENGTH = 15000
SIMPLE_MAX_TEXT_LENGTH = 10000
TRUNCATION_MARKER = "\n\n[Document truncated due to size]"
MAX_CHUNKS = 25

EMBED_CONCURRENCY = 1
EMBED_BATCH_PAUSE_SECONDS = 2.0
PERSIST_BATCH_SIZE = 10
PERSIST_BATCH_PAUSE_SECONDS = 0.1

# --- Retrieval ---
MATCH_THRESHOLD = 0.7
MATCH_COUNT = 5
FALLBACK_CHUNK_LIMIT = 5
ANSWER_MAX_TOKENS = 1000
ANSWER_TEMPERATURE = 0.7
