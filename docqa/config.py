"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DOCQA_DATA_DIR", str(BASE_DIR / "data")))

# Database
DB_PATH = DATA_DIR / "docqa.sqlite"
VECTOR_INDEX_DIR = DATA_DIR / "vectors"

# Embedding endpoint (Hugging Face inference, one text per call)
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "")
HF_INFERENCE_URL = os.getenv("HF_INFERENCE_URL", "https://router.huggingface.co/hf-inference")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
EMBEDDING_REQUEST_DELAY = float(os.getenv("EMBEDDING_REQUEST_DELAY", "0.15"))  # seconds between calls
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))

# Vector backend: "upstash" (REST) or "faiss" (local flat index)
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "upstash")
UPSTASH_VECTOR_REST_URL = os.getenv("UPSTASH_VECTOR_REST_URL", "")
UPSTASH_VECTOR_REST_TOKEN = os.getenv("UPSTASH_VECTOR_REST_TOKEN", "")
VECTOR_TIMEOUT = float(os.getenv("VECTOR_TIMEOUT", "30.0"))
UPSERT_BATCH_SIZE = int(os.getenv("UPSERT_BATCH_SIZE", "100"))

# Generation (Groq, OpenAI-compatible chat completions)
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "60.0"))

# RAG parameters (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))   # per document
HISTORY_WINDOW = int(os.getenv("HISTORY_WINDOW", "10"))    # messages sent to the model

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Raw fallback: cap on bytes inflated from compressed streams per document
MAX_INFLATED_BYTES = int(os.getenv("MAX_INFLATED_BYTES", str(4 * MAX_UPLOAD_BYTES)))
MAX_INFLATE_RATIO = int(os.getenv("MAX_INFLATE_RATIO", "20"))  # inflated bytes per input byte

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
