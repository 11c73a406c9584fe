import json
import time
from typing import Optional

from logger_config import logger, log_api_call, log_detailed_error
from image_utils import image_processor


class ReasoningServiceError(Exception):
    """The reasoning service could not produce a usable answer."""


class ReasoningParseError(ReasoningServiceError):
    """The reasoning service answered, but no JSON object could be recovered."""


def extract_json_object(raw_text: str) -> dict:
    """
    Recover a JSON object from model output.

    Models wrap JSON in prose or code fences now and then, so the object is taken
    from the first '{' to the last '}' instead of parsing the whole reply.
    """
    if not raw_text:
        raise ReasoningParseError("Empty response")
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end <= start:
        raise ReasoningParseError(f"No JSON object in response: {raw_text[:120]}")
    try:
        parsed = json.loads(raw_text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ReasoningParseError(f"Malformed JSON in response: {e}") from e
    if not isinstance(parsed, dict):
        raise ReasoningParseError("Response JSON is not an object")
    return parsed


class ReasoningClient:
    """Thin wrapper over Groq chat completions: prompt (and optional image) in, text out."""

    def __init__(self, groq_client, temperature: float = 0.4, max_tokens: int = 1024):
        self.groq_client = groq_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, image: Optional[bytes] = None, model: str = "llama-3.1-8b-instant",
                       system_prompt: Optional[str] = None, json_mode: bool = True) -> str:
        if not self.groq_client:
            raise ReasoningServiceError("Groq client not initialized.")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        if image:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_processor.encode_image_to_data_url(image)}},
                ],
            })
        else:
            messages.append({"role": "user", "content": prompt})

        request = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_completion_tokens": self.max_tokens,
        }
        # JSON mode is not available together with image input
        if json_mode and not image:
            request["response_format"] = {"type": "json_object"}

        start_time = time.time()
        try:
            chat_completion = await self.groq_client.chat.completions.create(**request)
        except Exception as e:
            log_detailed_error(
                e,
                context="ReasoningClient.generate",
                local_vars={
                    "prompt": prompt[:200],
                    "model": model,
                    "has_image": bool(image),
                }
            )
            log_api_call("groq", model, "error", time.time() - start_time)
            raise ReasoningServiceError(str(e)) from e

        log_api_call("groq", model, "success", time.time() - start_time)
        content = chat_completion.choices[0].message.content or ""
        logger.info(f"Reasoning response from {model}: {content[:200]}")
        return content
