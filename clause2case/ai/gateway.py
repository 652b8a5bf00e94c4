"""
Clause2Case
LLM Gateway — the external generation capability.

Provider-agnostic router with:
    - Multi-provider support (OpenAI, Anthropic Claude, Google Gemini, local stub)
    - Caller-imposed timeout on every call
    - Cooperative cancellation (CancelToken) so a timed-out call is abandoned
      and its provider client released
    - Token usage reporting in ``usage_metadata``

The pipeline only relies on "accepts a prompt, returns text": no vendor
semantics leak past ``invoke``.

Usage:
    from clause2case.ai.gateway import LLMGateway
    gw = LLMGateway(provider="openai", model="gpt-4o-mini")
    result = gw.invoke("Generate test cases ...", system="You are a QA engineer", timeout=90)
    result["text"], result["usage_metadata"]
"""

import hashlib
import json
import logging
import os
import re
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

logger = logging.getLogger(__name__)


# ── Errors ────────────────────────────────────────────────────────────────────

class LLMError(Exception):
    """Provider call failed (network, auth, quota, empty response)."""


class LLMTimeoutError(LLMError):
    """Provider call exceeded the caller's timeout and was cancelled."""


# ── Cancellation ──────────────────────────────────────────────────────────────

class CancelToken:
    """
    Cooperative cancellation flag shared between the gateway and a provider.

    Providers check ``cancelled`` before and after blocking work and may
    register cleanup callbacks (e.g. closing an HTTP client) that run once
    when the token is cancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback):
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception as exc:
                logger.warning("Cancel callback failed: %s", exc)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    name = "abstract"
    default_model = ""

    @abstractmethod
    def chat(self, messages: list, model: str, *, timeout: float | None = None,
             cancel_token: CancelToken | None = None, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            timeout: Seconds the HTTP client may block.
            cancel_token: Set by the gateway when the caller gives up.
            **kwargs: temperature, max_tokens, etc.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """
        Generate embeddings for a list of texts.

        Returns:
            List of float vectors (one per input text).
        """
        raise NotImplementedError(f"{self.name} provider does not support embeddings")


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT + Embedding provider."""

    name = "openai"
    default_model = "gpt-4o-mini"
    default_embed_model = "text-embedding-3-small"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", *, timeout: float | None = None,
             cancel_token: CancelToken | None = None, **kwargs) -> dict:
        client = self._get_client().with_options(timeout=timeout, max_retries=0)
        if cancel_token is not None:
            cancel_token.on_cancel(client.close)
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.7),
            response_format={"type": "json_object"},
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
            "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            "model": model,
        }

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        client = self._get_client()
        response = client.embeddings.create(
            model=model or self.default_embed_model,
            input=texts,
            encoding_format="float",
        )
        return [item.embedding for item in response.data]


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    name = "anthropic"
    default_model = "claude-3-5-haiku-20241022"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", *,
             timeout: float | None = None, cancel_token: CancelToken | None = None,
             **kwargs) -> dict:
        client = self._get_client().with_options(timeout=timeout, max_retries=0)
        if cancel_token is not None:
            cancel_token.on_cancel(client.close)

        # Separate system message
        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.7),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── Google Gemini Provider ────────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Provides both chat and embeddings from a single API key.

    Environment:
        GEMINI_API_KEY — obtain at https://aistudio.google.com/apikey
    """

    name = "gemini"
    default_model = "gemini-2.5-flash"
    default_embed_model = "gemini-embedding-001"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", *,
             timeout: float | None = None, cancel_token: CancelToken | None = None,
             **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        # Separate system instruction from conversation messages
        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(
                    types.Content(role=role, parts=[types.Part(text=m["content"])])
                )

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.7),
            max_output_tokens=kwargs.get("max_tokens", 4096),
            response_mime_type="application/json",
        )
        if timeout:
            config.http_options = types.HttpOptions(timeout=int(timeout * 1000))
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)

        response = client.models.generate_content(model=model, contents=contents, config=config)

        prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
        completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        return {
            "content": response.text or "",
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "model": model,
        }

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        client = self._get_client()
        from google.genai import types

        result = client.models.embed_content(
            model=model or self.default_embed_model,
            contents=texts,
            config=types.EmbedContentConfig(
                task_type="RETRIEVAL_DOCUMENT",
                output_dimensionality=1536,
            ),
        )
        return [e.values for e in result.embeddings]


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

_STUB_CATEGORIES = (
    ["functional"] * 4 + ["edge_case"] * 3 + ["compliance"] * 2 + ["integration"]
)
_STUB_PRIORITIES = ["high", "medium", "low"]


class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic, in-contract test cases.
    No API key required.
    """

    name = "local"
    default_model = "local-stub"

    def chat(self, messages: list, model: str = "local-stub", *, timeout: float | None = None,
             cancel_token: CancelToken | None = None, **kwargs) -> dict:
        prompt = "\n".join(m["content"] for m in messages)
        content = self._generate_stub_response(prompt)
        return {
            "content": content,
            "prompt_tokens": len(prompt.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Deterministic pseudo-embeddings (SHA-512 bytes spread over 256 dims)."""
        vectors = []
        for text in texts:
            h = hashlib.sha512(text.encode("utf-8")).digest()
            vectors.append([(h[i % len(h)] - 128) / 256.0 for i in range(256)])
        return vectors

    @staticmethod
    def _generate_stub_response(prompt: str) -> str:
        match = re.search(r"Document:\s*(.+)", prompt)
        subject = match.group(1).strip() if match else "the document"
        cases = []
        for i, category in enumerate(_STUB_CATEGORIES, start=1):
            cases.append({
                "title": f"Verify {category.replace('_', ' ')} rule {i} of {subject}",
                "description": f"Checks that {subject} behaves as described for scenario {i}.",
                "category": category,
                "priority": _STUB_PRIORITIES[i % 3],
                "steps": [
                    "Log in as a user with the required role",
                    f"Open the workflow covered by {subject}",
                    f"Enter the data required by scenario {i}",
                    "Submit the form",
                    "Inspect the confirmation and audit record",
                ],
                "expectedResult": f"Scenario {i} completes as the document specifies.",
                "tags": [category, "stub"],
            })
        return json.dumps({"testCases": cases})


PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "local": LocalStubProvider,
}


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for generation calls.

    Every call runs on a worker thread so the caller can stop waiting at the
    timeout; the provider is then told to abort via its CancelToken.

    Usage:
        gw = LLMGateway(provider="local")
        result = gw.invoke("prompt text", timeout=90)
    """

    def __init__(self, provider: str | LLMProvider | None = None, model: str | None = None,
                 *, max_workers: int = 4):
        if isinstance(provider, LLMProvider):
            self._provider = provider
        else:
            name = provider or os.getenv("AI_PROVIDER", "local")
            provider_cls = PROVIDERS.get(name)
            if provider_cls is None:
                raise ValueError(f"Unknown AI provider: {name!r}. Available: {', '.join(sorted(PROVIDERS))}")
            self._provider = provider_cls()
        self.model = model or self._provider.default_model
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="llm-call")

    @property
    def provider_name(self) -> str:
        return self._provider.name

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    def invoke(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        **kwargs,
    ) -> dict:
        """
        Send one prompt and return the raw text.

        Args:
            prompt: User prompt.
            system: Optional system instruction.
            model: Overrides the gateway's model.
            timeout: Seconds to wait before cancelling the call.

        Returns:
            dict: {text, usage_metadata: {provider, model, prompt_tokens,
                   completion_tokens, latency_ms}}

        Raises:
            LLMTimeoutError: The call did not finish within ``timeout``.
            LLMError: The provider raised or returned nothing.
        """
        model = model or self.model
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        token = CancelToken()
        start = time.monotonic()
        future = self._executor.submit(
            self._provider.chat, messages, model,
            timeout=timeout, cancel_token=token, **kwargs,
        )
        try:
            response = future.result(timeout=timeout)
        except FutureTimeoutError:
            token.cancel()
            future.cancel()
            logger.warning("LLM call timed out after %.1fs (provider=%s model=%s)",
                           timeout, self.provider_name, model)
            raise LLMTimeoutError(f"Generation call exceeded timeout of {timeout:g}s")
        except Exception as exc:
            if token.cancelled:
                raise LLMTimeoutError(f"Generation call exceeded timeout of {timeout:g}s") from exc
            logger.error("LLM call failed (provider=%s model=%s): %s", self.provider_name, model, exc)
            raise LLMError(f"{self.provider_name} call failed: {exc}") from exc

        latency_ms = int((time.monotonic() - start) * 1000)
        text = response.get("content") or ""
        if not text.strip():
            raise LLMError(f"{self.provider_name} returned an empty response")

        logger.info("LLM call ok provider=%s model=%s tokens=%d+%d",
                    self.provider_name, model,
                    response.get("prompt_tokens", 0), response.get("completion_tokens", 0),
                    extra={"duration_ms": latency_ms, "provider": self.provider_name, "model": model})
        return {
            "text": text,
            "usage_metadata": {
                "provider": self.provider_name,
                "model": response.get("model", model),
                "prompt_tokens": response.get("prompt_tokens", 0),
                "completion_tokens": response.get("completion_tokens", 0),
                "latency_ms": latency_ms,
            },
        }

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Embed texts with the configured provider."""
        if not texts:
            return []
        return self._provider.embed(texts, model)

    def shutdown(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
