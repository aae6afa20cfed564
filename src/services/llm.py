import time
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List

from langchain_ollama import ChatOllama
from langchain_core.messages import HumanMessage
import httpx

from core.errors import OracleCallError

logger = logging.getLogger(__name__)


class Oracle(ABC):
    """
    Any text-completion capability used for rating, deduplicating,
    rewriting or fact-checking. Output is untrusted text.
    """

    name: str = "oracle"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Return the raw completion text for the prompt.
        Raises OracleCallError when no answer could be obtained.
        """
        raise NotImplementedError


class OllamaOracle(Oracle):
    """
    LangChain-based Ollama client with an explicit per-call timeout.
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        max_retries: int = 1,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip('/')
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_ctx=4096,
        )

    async def _invoke_with_retry(self, messages: List[HumanMessage]) -> Any:
        """
        Invoke LLM, retrying connection failures only when max_retries > 1.
        """
        last_exception = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    self.llm.ainvoke(messages),
                    timeout=self.timeout,
                )

            except asyncio.TimeoutError:
                last_exception = OracleCallError(
                    f"Request timed out after {self.timeout}s",
                    {"model": self.model},
                )
                logger.warning(f"Attempt {attempt}/{self.max_retries}: Timeout")

            except Exception as e:
                error_msg = str(e)
                if "connection" in error_msg.lower() or "connect" in error_msg.lower():
                    last_exception = OracleCallError(
                        f"Connection error: {error_msg}",
                        {"base_url": self.base_url, "model": self.model},
                    )
                    logger.warning(
                        f"Attempt {attempt}/{self.max_retries}: Connection error - {error_msg} (base_url={self.base_url}, model={self.model})"
                    )
                else:
                    raise OracleCallError(error_msg or type(e).__name__, {"model": self.model}) from e

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise last_exception or OracleCallError("All connection attempts failed")

    async def complete(self, prompt: str) -> str:
        start = time.time()

        response = await self._invoke_with_retry([HumanMessage(content=prompt)])

        latency_ms = int((time.time() - start) * 1000)
        logger.debug(f"Oracle response received (latency: {latency_ms}ms)")

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return content

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
        except Exception as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False
