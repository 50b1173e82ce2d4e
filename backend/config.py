import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("DATABASE_PATH", "taskai.db")

# Provider credentials and models
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# Order in which providers are tried; later ones are fallbacks
PROVIDERS = [p.strip() for p in os.getenv("PROVIDERS", "anthropic,openai").split(",") if p.strip()]

MAX_TOKENS = int(os.getenv("MAX_TOKENS", "1000"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.1"))
MODEL_TIMEOUT_S = float(os.getenv("MODEL_TIMEOUT_S", "60"))
# Per provider; keep below MODEL_TIMEOUT_S so a hung provider fails over in time
PROVIDER_TIMEOUT_S = float(os.getenv("PROVIDER_TIMEOUT_S", "25"))

# Prompt sizing
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "5"))
CONTEXT_TASK_LIMIT = int(os.getenv("CONTEXT_TASK_LIMIT", "20"))

DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "local")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
