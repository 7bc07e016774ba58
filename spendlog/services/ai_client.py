"""
Chat-completion client for the hosted language model

Every call has a fixed timeout; there are no retries. Callers surface the
error message to the user as-is.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import requests
from fastapi.concurrency import run_in_threadpool

from spendlog.config import settings
from spendlog.core.exceptions import ExternalServiceError, ExternalTimeoutError

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

STATUS_MESSAGES = {
    402: "AI service payment required. Please try again later or contact support.",
    429: "Service is busy. Please try again in a minute.",
}

def _as_object(value: Any) -> Any:
    # A bare array is the row list
    if isinstance(value, list):
        return {"transactions": value}
    return value

def parse_json_content(content: str) -> Any:
    """
    Pull a JSON value out of a model reply.

    Tries the whole reply, then a fenced block, then the outermost object,
    then the outermost array. A top-level array always comes back wrapped
    as ``{"transactions": [...]}``.
    """
    content = (content or "").strip()
    try:
        return _as_object(json.loads(content))
    except ValueError:
        pass

    fence = FENCE_PATTERN.search(content)
    if fence:
        try:
            return _as_object(json.loads(fence.group(1).strip()))
        except ValueError:
            pass

    # Whichever bracket opens first is the outermost value
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = content.find(opener), content.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, end))
    for start, end in sorted(spans):
        try:
            return _as_object(json.loads(content[start:end + 1]))
        except ValueError:
            pass

    raise ExternalServiceError("Could not parse JSON from AI response")

class AIClient:
    """
    Thin wrapper over the chat-completions HTTP endpoint
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.api_url = api_url or settings.AI_API_URL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured:
            raise ExternalServiceError("AI service not configured")

        try:
            response = self.session.post(
                self.api_url,
                json=payload,
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json"
                },
                timeout=self.timeout
            )
        except requests.Timeout:
            logger.warning("AI call timed out after %ss", self.timeout)
            raise ExternalTimeoutError("Processing timed out. Please try again.")
        except requests.RequestException as e:
            logger.error("AI call failed: %s", e)
            raise ExternalServiceError(f"AI service unavailable: {e}")

        if not response.ok:
            logger.error("AI HTTP %s: %s", response.status_code, response.text[:500])
            message = STATUS_MESSAGES.get(response.status_code, "AI service unavailable")
            raise ExternalServiceError(message, upstream_status=response.status_code)

        return response.json()

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 3000
    ) -> str:
        """
        Send a chat completion and return the first choice's text
        """
        payload = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }
        result = await run_in_threadpool(self._post, payload)

        choices = result.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content or not content.strip():
            raise ExternalServiceError("AI service returned an empty response")
        return content

    async def chat_json(self, messages: List[Dict[str, str]], **kwargs) -> Any:
        content = await self.chat(messages, **kwargs)
        return parse_json_content(content)
