# llm/chat_client.py
"""
Chat Model Client
- If OPENAI_API_KEY is set: OpenAI-compatible endpoint (SSE streaming)
- Otherwise: local Ollama /api/chat (NDJSON streaming)

Non-streaming calls (tool routing) go through the openai SDK or a plain
Ollama request. Streaming calls return the raw byte stream; decoding is
left to the stream transform and the decoder from ``stream_decoder()``.
"""

from typing import AsyncIterator, Dict, List, Optional, Union

import httpx
from loguru import logger
from openai import AsyncOpenAI

from ..config import settings
from .stream_decoder import NDJSONStreamDecoder, SSEStreamDecoder, StreamDecoder


class GenerationError(RuntimeError):
    """The chat model could not be invoked; fatal for the turn"""


Messages = List[Dict[str, str]]


class ChatModelClient:
    """
    Usage:
        client = ChatModelClient()
        text = await client.complete(messages, max_tokens=200)
        stream = await client.generate_chat(messages, streaming=True)
        async for chunk in stream: ...
    """

    def __init__(self, use_openai: Optional[bool] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.use_openai = settings.use_openai if use_openai is None else use_openai
        self.max_tokens = settings.LLM_MAX_TOKENS
        self._http = http_client or httpx.AsyncClient(timeout=settings.LLM_TIMEOUT)

        self._openai: Optional[AsyncOpenAI] = None
        if self.use_openai:
            if not settings.OPENAI_API_KEY:
                raise GenerationError("OpenAI provider selected but OPENAI_API_KEY is not set")
            self._openai = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL
            )
            self.model = settings.OPENAI_MODEL
            logger.info(f"✓ LLM Provider: OpenAI ({self.model})")
        else:
            self.model = settings.OLLAMA_CHAT_MODEL
            logger.info(f"✓ LLM Provider: Ollama ({self.model} at {settings.OLLAMA_BASE_URL})")

    @property
    def provider(self) -> str:
        return "openai" if self.use_openai else "ollama"

    def stream_decoder(self) -> StreamDecoder:
        """Fresh decoder matching this provider's stream framing"""
        return SSEStreamDecoder() if self.use_openai else NDJSONStreamDecoder()

    # ============================================
    # Non-streaming
    # ============================================

    async def complete(self, messages: Messages, max_tokens: Optional[int] = None) -> str:
        """Single-shot completion, returns the reply text"""
        max_tokens = max_tokens or self.max_tokens

        if self._openai is not None:
            response = await self._openai.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=0.2
            )
            return response.choices[0].message.content or ""

        response = await self._http.post(
            f"{settings.OLLAMA_BASE_URL}/api/chat",
            json={
                "model": self.model,
                "messages": messages,
                "stream": False,
                "options": {"num_predict": max_tokens, "temperature": 0.2}
            }
        )
        response.raise_for_status()
        return response.json().get("message", {}).get("content", "")

    # ============================================
    # Streaming
    # ============================================

    async def generate_chat(
        self,
        messages: Messages,
        streaming: bool = True,
        max_tokens: Optional[int] = None
    ) -> Union[AsyncIterator[bytes], str]:
        """
        Invoke the chat model.

        With streaming=True the HTTP response is opened before returning,
        so connection and status failures raise GenerationError here
        rather than surfacing mid-stream.
        """
        if not streaming:
            try:
                return await self.complete(messages, max_tokens)
            except Exception as e:
                raise GenerationError(f"Chat completion failed: {e}") from e

        max_tokens = max_tokens or self.max_tokens
        if self.use_openai:
            url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"
            headers = {"Authorization": f"Bearer {settings.OPENAI_API_KEY}"}
            payload = {
                "model": self.model,
                "messages": messages,
                "max_tokens": max_tokens,
                "stream": True
            }
        else:
            url = f"{settings.OLLAMA_BASE_URL.rstrip('/')}/api/chat"
            headers = {}
            payload = {
                "model": self.model,
                "messages": messages,
                "stream": True,
                "options": {"num_predict": max_tokens}
            }

        request = self._http.build_request("POST", url, json=payload, headers=headers)
        try:
            response = await self._http.send(request, stream=True)
        except httpx.ConnectError as e:
            logger.error(f"Cannot connect to {self.provider} at {url}")
            raise GenerationError(f"Cannot connect to {self.provider}: {e}") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"{self.provider} request failed: {e}") from e

        if response.status_code != 200:
            body = await response.aread()
            await response.aclose()
            raise GenerationError(
                f"{self.provider} error {response.status_code}: {body[:200].decode('utf-8', 'replace')}"
            )

        logger.debug(f"Opened {self.provider} stream ({len(messages)} messages)")
        return self._iter_bytes(response)

    async def _iter_bytes(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()

    async def close(self):
        await self._http.aclose()
        if self._openai is not None:
            await self._openai.close()
