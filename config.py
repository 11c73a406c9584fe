import os
from dotenv import load_dotenv, find_dotenv

# Load environment variables
load_dotenv(find_dotenv())

STORE_NAME = os.getenv("STORE_NAME", "Art Assistant")

# API Keys
# Default reasoning credential; the settings store in Redis takes precedence.
GROQ_API_KEY = os.environ.get("GROQ_API_KEY")
REASONING_KEY_SETTING = "GROQ_API_KEY"

# Reasoning providers, tried in order (fast model first)
REASONING_MODELS = [m.strip() for m in os.getenv("REASONING_MODELS", "llama-3.1-8b-instant,llama-3.3-70b-versatile").split(",") if m.strip()]
VISION_MODELS = [m.strip() for m in os.getenv("VISION_MODELS", "meta-llama/llama-4-scout-17b-16e-instruct,meta-llama/llama-4-maverick-17b-128e-instruct").split(",") if m.strip()]
REASONING_MAX_ATTEMPTS = int(os.getenv("REASONING_MAX_ATTEMPTS", 3))
REASONING_BACKOFF_BASE = float(os.getenv("REASONING_BACKOFF_BASE", 1.0))
REASONING_DEADLINE_SECONDS = float(os.getenv("REASONING_DEADLINE_SECONDS", 25.0))

# Redis Configuration
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_USERNAME = os.getenv("REDIS_USERNAME")
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")

if REDIS_USERNAME and REDIS_PASSWORD:
    REDIS_URL = f"redis://{REDIS_USERNAME}:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}"
else:
    REDIS_URL = f"redis://{REDIS_HOST}:{REDIS_PORT}"

# Shopify Configuration
SHOPIFY_SHOP_DOMAIN = os.getenv("SHOPIFY_SHOP_DOMAIN", "")
SHOPIFY_STOREFRONT_TOKEN = os.getenv("SHOPIFY_STOREFRONT_TOKEN", "")
SHOPIFY_ADMIN_TOKEN = os.getenv("SHOPIFY_ADMIN_TOKEN", "")
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-01")
CATALOG_TIMEOUT_SECONDS = float(os.getenv("CATALOG_TIMEOUT_SECONDS", 10.0))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

# Logging
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
