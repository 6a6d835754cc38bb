"""Chat-completion request service."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from .config import AGENT_MAX_TOKENS, AGENT_TEMPERATURE, CHAT_API_BASE_URL, CHAT_MODEL, OPENAI_API_KEY


@dataclass
class CompletionResult:
    """Outcome envelope: ``data`` holds the raw response on success."""

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: str = ""

    def message(self) -> Optional[Dict[str, Any]]:
        """``choices[0].message`` of the response, if present."""
        choices = self.data.get("choices") or []
        if not choices:
            return None
        return choices[0].get("message")


class ChatCompletionService:
    """Sends chat-completion requests and never raises on API failures."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = CHAT_MODEL,
        client: Optional[AsyncOpenAI] = None,
        logger=None,
    ):
        self.logger = logger or logging.getLogger("AccessAI.ChatCompletionService")
        self.model = model
        self.client = client or AsyncOpenAI(
            api_key=api_key or OPENAI_API_KEY,
            base_url=base_url or CHAT_API_BASE_URL,
        )

    async def request(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        max_tokens: int = AGENT_MAX_TOKENS,
        temperature: float = AGENT_TEMPERATURE,
    ) -> CompletionResult:
        params: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = tool_choice or "auto"
        try:
            response = await self.client.chat.completions.create(**params)
        except OpenAIError as exc:
            self.logger.error(f"Chat completion failed: {exc}")
            return CompletionResult(success=False, error=str(exc))
        return CompletionResult(success=True, data=response.model_dump(exclude_none=True))
