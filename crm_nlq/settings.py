# crm_nlq/settings.py
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[1]

def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")

# Database the /ask endpoint executes compiled queries against
DATABASE_URL = os.getenv("NLQ_DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'crm.sqlite3'}")

# Intent oracle: "local" (Hugging Face model) or "openai" (hosted chat endpoint)
ORACLE_BACKEND = os.getenv("NLQ_ORACLE_BACKEND", "local").lower()
ORACLE_TIMEOUT_S = float(os.getenv("NLQ_ORACLE_TIMEOUT_S", "30"))

# Small instruction-tuned model that can follow a JSON output format
ORACLE_MODEL_ID = os.getenv("NLQ_ORACLE_MODEL_ID", "Qwen/Qwen2.5-0.5B-Instruct")
ORACLE_MAX_NEW_TOKENS = int(os.getenv("NLQ_ORACLE_MAX_NEW_TOKENS", "256"))

# Warm the local model at startup; PRELOAD_BLOCKING decides whether startup waits for it
ORACLE_PRELOAD = _flag("NLQ_ORACLE_PRELOAD", "true")
PRELOAD_BLOCKING = _flag("PRELOAD_BLOCKING", "true")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")

LOG_LEVEL = os.getenv("NLQ_LOG_LEVEL", "INFO")

HF_HOME = PROJECT_ROOT / "hf-cache"
TRANSFORMERS_CACHE = HF_HOME / "transformers"
