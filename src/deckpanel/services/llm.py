import asyncio
import itertools
import json
import logging
import re
import time
from typing import Any, Dict, Protocol

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from deckpanel.core.errors import MalformedCompletionError, UpstreamError
from deckpanel.services.config import Config

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


class CompletionGateway(Protocol):
    """
    Boundary over the language-model service.
    One call is one round trip; nothing is cached or retried.
    """

    async def complete_text(self, system_prompt: str, user_prompt: str) -> str:
        ...

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        ...

    async def health_check(self) -> bool:
        ...


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _extract_json(content: str) -> str:
    """
    Strip a markdown code fence if the model wrapped its JSON in one.
    """
    content = content.strip()
    match = _FENCE.match(content)
    if match:
        return match.group(1).strip()
    return content


def parse_json_object(content: str) -> Dict[str, Any]:
    """
    Parse a completion that must be a single JSON object.
    """
    try:
        parsed = json.loads(_extract_json(content))
    except json.JSONDecodeError as e:
        raise MalformedCompletionError(f"Invalid JSON response from model: {e}", raw=content) from e

    if not isinstance(parsed, dict):
        raise MalformedCompletionError(
            f"Expected a JSON object from model, got {type(parsed).__name__}", raw=content
        )
    return parsed


class OllamaClient:
    """
    LangChain-based Ollama client implementing the completion gateway.
    Owns its call counter, used only to correlate request/response log lines.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.8,
        timeout: float = 300.0,
        num_ctx: int = 8192,
        prompt_log_chars: int = 300,
        response_log_chars: int = 800,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.prompt_log_chars = prompt_log_chars
        self.response_log_chars = response_log_chars
        self._call_ids = itertools.count(1)

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_ctx=num_ctx,
        )
        self.json_llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_ctx=num_ctx,
            format="json",
        )

    @classmethod
    def from_config(cls, config: Config) -> "OllamaClient":
        return cls(
            base_url=config.OLLAMA_BASE_URL,
            model=config.OLLAMA_MODEL,
            temperature=config.LLM_TEMPERATURE,
            timeout=config.LLM_TIMEOUT,
            num_ctx=config.LLM_NUM_CTX,
            prompt_log_chars=config.LOG_PROMPT_CHARS,
            response_log_chars=config.LOG_RESPONSE_CHARS,
        )

    async def _invoke(self, llm: ChatOllama, system_prompt: str, user_prompt: str, label: str) -> str:
        call_id = next(self._call_ids)
        logger.info(
            f"CALL #{call_id}{label} -> {self.model} "
            f"system={_truncate(system_prompt, self.prompt_log_chars)!r} "
            f"user={_truncate(user_prompt, self.prompt_log_chars)!r}",
            extra={"call_id": call_id},
        )

        start = time.time()
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"CALL #{call_id}{label} timed out after {self.timeout}s", extra={"call_id": call_id})
            raise UpstreamError(f"Model request timed out after {self.timeout}s")
        except Exception as e:
            logger.error(
                f"CALL #{call_id}{label} failed: {e} (base_url={self.base_url}, model={self.model})",
                extra={"call_id": call_id},
            )
            raise UpstreamError(f"Model request failed: {e}") from e

        latency_ms = int((time.time() - start) * 1000)
        content = response.content if isinstance(response.content, str) else str(response.content)
        usage = getattr(response, "usage_metadata", None) or {}

        logger.info(
            f"RESPONSE #{call_id}{label} ({latency_ms}ms) "
            f"tokens: {usage.get('input_tokens')}->{usage.get('output_tokens')} "
            f"{_truncate(content, self.response_log_chars)!r}",
            extra={"call_id": call_id},
        )
        return content

    async def complete_text(self, system_prompt: str, user_prompt: str) -> str:
        content = await self._invoke(self.llm, system_prompt, user_prompt, "")
        return content.strip()

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        content = await self._invoke(self.json_llm, system_prompt, user_prompt, " [JSON]")
        return parse_json_object(content)

    async def health_check(self) -> bool:
        """
        Check if the Ollama server is reachable by calling /api/tags.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
                if resp.status_code == 200:
                    return True
                logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
                return False
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False
