"""
OpenRouter chat completion client used by every LLM stage of the content workflow
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from config import OPENROUTER_BASE_URL, SITE_URL, APP_TITLE, require_setting
from const import MODEL_PRICING
from errors import ProviderError, TransportError
from services.http_utils import build_client, extract_error_message, request_json

logger = logging.getLogger(__name__)


class LLMCompletion(BaseModel):
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @property
    def cost_usd(self) -> float:
        input_price, output_price = MODEL_PRICING.get(self.model, (0.0, 0.0))
        return (self.prompt_tokens * input_price + self.completion_tokens * output_price) / 1_000_000


class OpenRouterClient:
    """
    Client for the OpenRouter chat completions API
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        # Resolved per client so a missing key only fails the call that needs it
        self.api_key = api_key or require_setting("OPENROUTER_API_KEY")
        self.base_url = base_url or OPENROUTER_BASE_URL
        self.transport = transport
        self.max_retries = 2

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": SITE_URL,
            "X-Title": APP_TITLE,
        }

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> LLMCompletion:
        """
        Run one chat completion

        Args:
            messages: OpenAI style role/content messages
            model: OpenRouter model slug, e.g. 'openai/gpt-4o'
            temperature: Sampling temperature
            max_tokens: Completion token cap

        Returns:
            LLMCompletion with the text and token usage

        Raises:
            ProviderError: error body from OpenRouter
            TransportError: network failure after all retries
        """
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.debug(f"[OpenRouter] Calling {model} (attempt {attempt}/{self.max_retries})")
                async with build_client(self.base_url, self._headers(), self.transport) as client:
                    result = await request_json(client, "POST", "/chat/completions", "OpenRouter", json=payload)
                break
            except TransportError as e:
                last_error = e
                logger.warning(f"[OpenRouter] Transport error on attempt {attempt}/{self.max_retries}: {str(e)}")
                if attempt < self.max_retries:
                    await asyncio.sleep(2)
                    continue
                logger.error("[OpenRouter] All retries exhausted - transport error")
                raise
        else:
            raise TransportError(f"OpenRouter failed after {self.max_retries} attempts: {str(last_error)}")

        completion = self._parse_completion(result, model)
        logger.info(
            f"[OpenRouter] Completed {completion.model}: {completion.prompt_tokens} prompt tokens, "
            f"{completion.completion_tokens} completion tokens, ${completion.cost_usd:.4f}"
        )
        return completion

    def _parse_completion(self, result: Any, model: str) -> LLMCompletion:
        if not isinstance(result, dict):
            raise ProviderError("OpenRouter returned a non-JSON body", payload=result)

        # OpenRouter can report upstream failures inside a 200 response
        if result.get("error"):
            raise ProviderError(
                extract_error_message(result, "OpenRouter returned an error"),
                payload=result,
            )

        choices = result.get("choices") or []
        if not choices:
            raise ProviderError("OpenRouter returned no choices", payload=result)

        content = (choices[0].get("message") or {}).get("content") or ""
        usage = result.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0) or 0
        completion_tokens = usage.get("completion_tokens", 0) or 0

        return LLMCompletion(
            content=content,
            model=result.get("model") or model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=usage.get("total_tokens") or prompt_tokens + completion_tokens,
        )


def parse_json_content(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response

    Models sometimes wrap JSON in markdown code blocks or add prose around it.

    Raises:
        ValueError: no JSON object could be decoded
    """
    response_text = (text or "").strip()
    if not response_text:
        raise ValueError("Empty response from model")

    # Remove markdown code blocks if present
    if response_text.startswith("```"):
        lines = response_text.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        response_text = "\n".join(lines).strip()

    try:
        parsed = json.loads(response_text)
    except json.JSONDecodeError:
        start = response_text.find("{")
        end = response_text.rfind("}")
        if start == -1 or end <= start:
            logger.error(f"[OpenRouter Parser] No JSON object in response (first 500 chars): {response_text[:500]}")
            raise ValueError("Model response did not contain JSON")
        parsed = json.loads(response_text[start:end + 1])

    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed
