"""
Logging setup for the art assistant.

Two named loggers share the logs/ directory:
- ``art_assistant``: application log (assistant.log) plus errors.log for ERROR and above
- ``art_assistant.turns``: one line per chat turn and catalog query (turns.log), for reviewing
  what customers asked and what they were shown
"""

import asyncio
import logging
import os
import traceback
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, Optional

from config import LOG_DIR, LOG_LEVEL

MAX_VALUE_LENGTH = 500

os.makedirs(LOG_DIR, exist_ok=True)

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s'
SIMPLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _file_handler(filename: str, level: int, fmt: str) -> logging.Handler:
    handler = logging.FileHandler(os.path.join(LOG_DIR, filename), encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logger() -> logging.Logger:
    """Application logger: everything to file, errors to their own file, warnings to the console."""
    app_logger = logging.getLogger('art_assistant')
    app_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    # Reloads (uvicorn --reload) would otherwise stack handlers
    app_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))

    app_logger.addHandler(_file_handler('assistant.log', logging.DEBUG, DETAILED_FORMAT))
    app_logger.addHandler(_file_handler('errors.log', logging.ERROR, DETAILED_FORMAT))
    app_logger.addHandler(console_handler)
    return app_logger


def setup_turn_logger() -> logging.Logger:
    turn_logger = logging.getLogger('art_assistant.turns')
    turn_logger.setLevel(logging.INFO)
    turn_logger.propagate = False
    turn_logger.handlers.clear()
    turn_logger.addHandler(_file_handler('turns.log', logging.INFO, SIMPLE_FORMAT))
    return turn_logger


# Global logger instances
logger = setup_logger()
turn_logger = setup_turn_logger()


def _shorten(value: Any) -> str:
    try:
        text = str(value)
    except Exception as e:
        return f"<unprintable: {e}>"
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "... (truncated)"
    return text


def _describe(title: str, values: Optional[Dict[str, Any]]) -> str:
    if not values:
        return ""
    lines = [f"\n{title}:"]
    lines.extend(f"\n  {name}: {_shorten(value)}" for name, value in values.items())
    return "".join(lines)


def log_error(error: Exception, context: str = "", additional_info: dict = None):
    """
    Log an error with its traceback.

    Args:
        error: The exception that occurred
        context: Where it happened, e.g. "CandidateAggregator.aggregate"
        additional_info: Extra key/values to print with it
    """
    message = f"ERROR in {context}: {error}"
    if additional_info:
        message += f"\nAdditional Info: {additional_info}"
    logger.error(f"{message}\nTraceback:\n{traceback.format_exc()}")


def log_detailed_error(error: Exception, context: str = "", local_vars: dict = None, additional_info: dict = None):
    """
    Like log_error, plus the exception type and a dump of the caller's relevant state.
    Long values such as prompts are truncated.
    """
    message = f"DETAILED ERROR in {context}: {error}\nError Type: {type(error).__name__}"
    message += _describe("Additional Info", additional_info)
    message += _describe("Local Variables at Error", local_vars)
    logger.error(f"{message}\nFull Traceback:\n{traceback.format_exc()}")


def log_api_call(api_name: str, endpoint: str, status: str, duration: float = None):
    """One line per outbound call to Groq or Shopify."""
    timing = f" - Duration: {duration:.2f}s" if duration is not None else ""
    logger.info(f"API CALL: {api_name} - {endpoint} - Status: {status}{timing}")


def error_handler(context: str = ""):
    """
    Decorator that logs any exception escaping the wrapped function, then re-raises it.

    Args:
        context: Label used in the log line, e.g. "Catalog Labels"
    """
    def decorator(func: Callable) -> Callable:
        def report(e: Exception, args, kwargs):
            log_error(
                e,
                context=f"{context} - {func.__name__}",
                additional_info={
                    "function": func.__name__,
                    "args": str(args)[:200],
                    "kwargs": str(kwargs)[:200]
                }
            )

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    report(e, args, kwargs)
                    raise
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                report(e, args, kwargs)
                raise
        return sync_wrapper

    return decorator


def log_user_interaction(turn_kind: str, user_message: str, bot_response: str, intent: str = None):
    """Record a finished chat turn in turns.log."""
    turn_logger.info({
        "timestamp": datetime.now().isoformat(),
        "turn_kind": turn_kind,
        "user_message": (user_message or "")[:200],
        "bot_response": (bot_response or "")[:200],
        "intent": intent,
    })


def log_search_query(query: str, results_count: int, success: bool):
    """Record one catalog query and how many products it returned."""
    turn_logger.info({
        "timestamp": datetime.now().isoformat(),
        "query": query,
        "results_count": results_count,
        "success": success,
    })
