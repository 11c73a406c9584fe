import httpx
from groq import AsyncGroq
from config import CATALOG_TIMEOUT_SECONDS
from logger_config import logger

# Initialize Redis client
from redis_client_manager import get_async_redis_client
redis_client = get_async_redis_client()

# Groq clients keyed by credential; the key can change at runtime via the settings store
_groq_clients = {}

def get_groq_client(api_key: str):
    """Return a cached AsyncGroq client for the given credential, or None if it cannot be built."""
    if not api_key:
        return None
    if api_key not in _groq_clients:
        try:
            _groq_clients[api_key] = AsyncGroq(api_key=api_key)
        except Exception as e:
            logger.error(f"Error initializing Groq client: {e}")
            return None
    return _groq_clients[api_key]

# Shared HTTP client for the catalog services
_http_client = None

def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=CATALOG_TIMEOUT_SECONDS)
    return _http_client

async def close_http_client():
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None
