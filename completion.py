"""
completion.py — Text-generation backends used by generation stages.

Each provider implements complete(messages, temperature) -> str; the
CompletionClient picks one by identifier at call time:

  anthropic — Anthropic Messages API via the AsyncAnthropic SDK client
  deepseek  — OpenAI-compatible /chat/completions over httpx
  openai    — OpenAI-compatible /chat/completions over httpx

Every failure (missing key, unknown provider, HTTP error, timeout, empty or
malformed output) surfaces as CompletionError. There is no retry here: a
failed stage is re-run by the caller.
"""

import os
import logging
from typing import Protocol

import anthropic
import httpx
from anthropic import AsyncAnthropic

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PROVIDER      = os.getenv('DEFAULT_COMPLETION_PROVIDER', 'deepseek')
DEFAULT_TEMPERATURE   = float(os.getenv('GENERATION_TEMPERATURE', '0.7'))
LLM_TIMEOUT_SECONDS   = float(os.getenv('LLM_TIMEOUT_SECONDS', '300'))
LLM_MAX_OUTPUT_TOKENS = int(os.getenv('LLM_MAX_OUTPUT_TOKENS', '4000'))

ANTHROPIC_MODEL   = os.getenv('ANTHROPIC_MODEL',   'claude-haiku-4-5-20251001')
DEEPSEEK_BASE_URL = os.getenv('DEEPSEEK_BASE_URL', 'https://api.deepseek.com/v1')
DEEPSEEK_MODEL    = os.getenv('DEEPSEEK_MODEL',    'deepseek-chat')
OPENAI_BASE_URL   = os.getenv('OPENAI_BASE_URL',   'https://api.openai.com/v1')
OPENAI_MODEL      = os.getenv('OPENAI_MODEL',      'gpt-4o-mini')

EMPTY_RESPONSE_MESSAGE = 'Empty completion response received from LLM provider'


class CompletionError(Exception):
    pass


class CompletionProvider(Protocol):
    name: str

    async def complete(self, messages: list[dict], temperature: float) -> str: ...


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class AnthropicProvider:
    name = 'anthropic'

    def __init__(self, api_key: str | None = None, model: str = ANTHROPIC_MODEL,
                 max_tokens: int = LLM_MAX_OUTPUT_TOKENS, timeout: float = LLM_TIMEOUT_SECONDS,
                 client: AsyncAnthropic | None = None):
        self.api_key    = api_key
        self.model      = model
        self.max_tokens = max_tokens
        self.timeout    = timeout
        self._client    = client

    def _get_client(self) -> AsyncAnthropic:
        # Built on first use so a missing key only fails runs that pick this provider.
        if self._client is None:
            if not self.api_key:
                raise CompletionError('Missing API key for provider "anthropic"')
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def complete(self, messages: list[dict], temperature: float) -> str:
        client = self._get_client()

        system = '\n\n'.join(m['content'] for m in messages if m['role'] == 'system')
        conversation = [
            {'role': m['role'], 'content': m['content']}
            for m in messages if m['role'] != 'system'
        ]
        kwargs = {'system': system} if system else {}

        try:
            message = await client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                messages=conversation,
                **kwargs,
            )
        except anthropic.APIError as exc:
            raise CompletionError(f'anthropic request failed: {exc}') from exc

        text = ''.join(
            block.text for block in (message.content or [])
            if getattr(block, 'type', None) == 'text'
        )
        if not text.strip():
            raise CompletionError(EMPTY_RESPONSE_MESSAGE)
        return text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions (DeepSeek, OpenAI)
# ---------------------------------------------------------------------------

class ChatCompletionsProvider:

    def __init__(self, name: str, base_url: str, api_key: str | None, model: str,
                 max_tokens: int = LLM_MAX_OUTPUT_TOKENS, timeout: float = LLM_TIMEOUT_SECONDS,
                 http_client: httpx.AsyncClient | None = None):
        self.name        = name
        self.base_url    = base_url.rstrip('/')
        self.api_key     = api_key
        self.model       = model
        self.max_tokens  = max_tokens
        self.timeout     = timeout
        self._http       = http_client

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def complete(self, messages: list[dict], temperature: float) -> str:
        if not self.api_key:
            raise CompletionError(f'Missing API key for provider "{self.name}"')

        payload = {
            'model':       self.model,
            'messages':    messages,
            'temperature': temperature,
            'max_tokens':  self.max_tokens,
        }
        try:
            resp = await self._get_http().post(
                f'{self.base_url}/chat/completions',
                json=payload,
                headers={'Authorization': f'Bearer {self.api_key}'},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise CompletionError(
                f'{self.name} returned HTTP {exc.response.status_code}'
            ) from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f'{self.name} request failed: {exc!r}') from exc
        except ValueError as exc:
            raise CompletionError(f'{self.name} returned a malformed response') from exc

        content = _extract_content(data)
        if not content or not content.strip():
            raise CompletionError(EMPTY_RESPONSE_MESSAGE)
        return content

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()


def _extract_content(data) -> str | None:
    """First choice's message content (or streamed delta content)."""
    if not isinstance(data, dict):
        return None
    choices = data.get('choices') or []
    if not choices or not isinstance(choices[0], dict):
        return None
    choice = choices[0]
    for part in ('message', 'delta'):
        content = (choice.get(part) or {}).get('content')
        if isinstance(content, str):
            return content
    return None


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class CompletionClient:

    def __init__(self, providers):
        self.providers = {p.name: p for p in providers}

    async def complete(self, provider: str, messages: list[dict],
                       temperature: float = DEFAULT_TEMPERATURE) -> str:
        impl = self.providers.get(provider)
        if impl is None:
            raise CompletionError(f'Unknown completion provider: {provider!r}')
        logger.debug('Completion via %s (%d message(s))', provider, len(messages))
        return await impl.complete(messages, temperature)

    async def aclose(self) -> None:
        for impl in self.providers.values():
            close = getattr(impl, 'aclose', None)
            if close is not None:
                await close()


def build_completion_client() -> CompletionClient:
    """Client with every provider configured from the environment."""
    return CompletionClient([
        AnthropicProvider(api_key=os.getenv('ANTHROPIC_API_KEY')),
        ChatCompletionsProvider('deepseek', DEEPSEEK_BASE_URL,
                                os.getenv('DEEPSEEK_API_KEY'), DEEPSEEK_MODEL),
        ChatCompletionsProvider('openai', OPENAI_BASE_URL,
                                os.getenv('OPENAI_API_KEY'), OPENAI_MODEL),
    ])
