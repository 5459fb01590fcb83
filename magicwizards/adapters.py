"""
Provider adapters for Magic Wizards.

Each adapter turns a unified run request (system prompt + history + user
message) into one provider call and normalizes the answer into a
RunResult. Provider failures surface as ProviderError subclasses so the
control plane can handle every vendor the same way.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import anthropic
import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from magicwizards.config import FALLBACK_RATES, calculate_cost, get_pricing
from magicwizards.errors import WizardError
from magicwizards.schemas import (
    ModelTarget,
    Provider,
    Role,
    RunRequest,
    RunResult,
    RunUsage,
)


class ProviderError(WizardError):
    """Base class for provider-side and adapter configuration failures."""
    pass


class UnregisteredProviderError(ProviderError):
    """Raised when no adapter serves the resolved provider."""

    def __init__(self, provider: str, reason: Optional[str] = None):
        self.provider = provider
        self.reason = reason
        message = f"No adapter registered for provider \"{provider}\""
        if reason:
            message += f" (reason: {reason})"
        super().__init__(message + ".")


class MissingCredentialsError(ProviderError):
    """Raised at call time when a provider's API key is not configured."""

    def __init__(self, provider: str, env_var: str):
        self.provider = provider
        self.env_var = env_var
        super().__init__(f"{env_var} is required for the {provider} runtime.")


class ProviderCallError(ProviderError):
    """Raised when the provider call itself fails."""

    def __init__(self, provider: str, model: str, message: str):
        self.provider = provider
        self.model = model
        super().__init__(f"{provider} request failed for model {model}: {message}")


DEFAULT_MAX_OUTPUT_TOKENS = 4096
MOCK_ECHO_CHARS = 240


def affordable_output_tokens(model: str, budget_usd: float, ceiling: int) -> int:
    """Cap output tokens so a single reply cannot cost more than the run budget."""
    if budget_usd <= 0:
        return 1
    rates = get_pricing().get(model, FALLBACK_RATES)
    if rates["output"] <= 0:
        return ceiling
    affordable = int(budget_usd / rates["output"] * 1_000_000)
    return max(1, min(ceiling, affordable))


def build_chat_messages(request: RunRequest, include_system: bool = True) -> list[dict[str, str]]:
    """System prompt, prior turns and the user message as role/content dicts."""
    messages = []
    if include_system:
        messages.append({"role": Role.SYSTEM.value, "content": request.wizard.system_prompt})
    for message in request.history:
        messages.append({"role": Role(message.role).value, "content": message.content})
    messages.append({"role": Role.USER.value, "content": request.prompt})
    return messages


def build_prompt_text(request: RunRequest) -> str:
    """Flatten a request into one prompt for providers without chat roles."""
    history = "\n".join(
        f"{Role(message.role).value.upper()}: {message.content}" for message in request.history
    )
    parts = [
        request.wizard.system_prompt,
        f"Conversation history:\n{history}" if history else "",
        f"User message:\n{request.prompt}",
    ]
    return "\n\n".join(part for part in parts if part)


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters."""

    provider: str

    @abstractmethod
    async def run(self, request: RunRequest, target: ModelTarget) -> RunResult:
        """Execute a request against the target model."""
        pass


class MockAdapter(ProviderAdapter):
    """
    Deterministic echo adapter for sandbox tenants and tests.

    No network, no cost.
    """

    provider = Provider.MOCK.value

    async def run(self, request: RunRequest, target: ModelTarget) -> RunResult:
        snippet = request.prompt[:MOCK_ECHO_CHARS]
        return RunResult(
            text=f"[MOCK:{target.model}] {request.wizard.name} received: {snippet}",
            provider=self.provider,
            model=target.model,
            usage=RunUsage(cost_usd=0.0),
        )


class OpenAIAdapter(ProviderAdapter):
    """
    OpenAI chat completions adapter.

    Requires OPENAI_API_KEY environment variable (or an explicit api_key).
    """

    provider = Provider.OPENAI.value
    env_var = "OPENAI_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        self.api_key = api_key
        self.max_output_tokens = max_output_tokens
        self._clients: dict[str, openai.AsyncOpenAI] = {}

    def _client(self) -> openai.AsyncOpenAI:
        key = self.api_key or os.getenv(self.env_var)
        if not key:
            raise MissingCredentialsError(self.provider, self.env_var)
        if key not in self._clients:
            self._clients[key] = openai.AsyncOpenAI(api_key=key)
        return self._clients[key]

    async def run(self, request: RunRequest, target: ModelTarget) -> RunResult:
        client = self._client()
        try:
            response = await client.chat.completions.create(
                model=target.model,
                messages=build_chat_messages(request),
                max_tokens=affordable_output_tokens(
                    target.model, request.effective_max_budget_usd, self.max_output_tokens
                ),
            )
        except openai.OpenAIError as exc:
            raise ProviderCallError(self.provider, target.model, str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return RunResult(
            text=content if isinstance(content, str) else "No text returned by OpenAI.",
            provider=self.provider,
            model=target.model,
            usage=RunUsage(
                cost_usd=calculate_cost(target.model, input_tokens, output_tokens),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=usage.total_tokens if usage else None,
            ),
            external_session_id=response.id,
            raw=response.model_dump(),
        )


class AnthropicAdapter(ProviderAdapter):
    """
    Anthropic messages adapter.

    Requires ANTHROPIC_API_KEY environment variable (or an explicit api_key).
    """

    provider = Provider.ANTHROPIC.value
    env_var = "ANTHROPIC_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        self.api_key = api_key
        self.max_output_tokens = max_output_tokens
        self._clients: dict[str, anthropic.AsyncAnthropic] = {}

    def _client(self) -> anthropic.AsyncAnthropic:
        key = self.api_key or os.getenv(self.env_var)
        if not key:
            raise MissingCredentialsError(self.provider, self.env_var)
        if key not in self._clients:
            self._clients[key] = anthropic.AsyncAnthropic(api_key=key)
        return self._clients[key]

    async def run(self, request: RunRequest, target: ModelTarget) -> RunResult:
        client = self._client()

        # Anthropic takes the system prompt separately; system turns in history join it
        system_parts = [request.wizard.system_prompt]
        messages = []
        for message in build_chat_messages(request, include_system=False):
            if message["role"] == Role.SYSTEM.value:
                system_parts.append(message["content"])
            else:
                messages.append(message)

        try:
            response = await client.messages.create(
                model=target.model,
                max_tokens=affordable_output_tokens(
                    target.model, request.effective_max_budget_usd, self.max_output_tokens
                ),
                system="\n\n".join(system_parts),
                messages=messages,
            )
        except anthropic.AnthropicError as exc:
            raise ProviderCallError(self.provider, target.model, str(exc)) from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens

        return RunResult(
            text=text or "No result returned by Anthropic runtime.",
            provider=self.provider,
            model=target.model,
            usage=RunUsage(
                cost_usd=calculate_cost(target.model, input_tokens, output_tokens),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            external_session_id=response.id,
            raw=response.model_dump(),
        )


class GoogleAdapter(ProviderAdapter):
    """
    Google Gemini adapter (google-genai SDK).

    Requires GOOGLE_API_KEY environment variable (or an explicit api_key).
    """

    provider = Provider.GOOGLE.value
    env_var = "GOOGLE_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        self.api_key = api_key
        self.max_output_tokens = max_output_tokens
        self._clients: dict[str, genai.Client] = {}

    def _client(self) -> genai.Client:
        key = self.api_key or os.getenv(self.env_var)
        if not key:
            raise MissingCredentialsError(self.provider, self.env_var)
        if key not in self._clients:
            self._clients[key] = genai.Client(api_key=key)
        return self._clients[key]

    async def run(self, request: RunRequest, target: ModelTarget) -> RunResult:
        client = self._client()
        try:
            # Sync client call moved off the event loop
            response = await asyncio.to_thread(
                client.models.generate_content,
                model=target.model,
                contents=build_prompt_text(request),
                config=genai_types.GenerateContentConfig(
                    max_output_tokens=affordable_output_tokens(
                        target.model, request.effective_max_budget_usd, self.max_output_tokens
                    ),
                ),
            )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise ProviderCallError(self.provider, target.model, str(exc)) from exc

        text = response.text
        metadata = response.usage_metadata
        input_tokens = (metadata.prompt_token_count or 0) if metadata else 0
        output_tokens = (metadata.candidates_token_count or 0) if metadata else 0

        return RunResult(
            text=text if isinstance(text, str) and text else "No text returned by Google runtime.",
            provider=self.provider,
            model=target.model,
            usage=RunUsage(
                cost_usd=calculate_cost(target.model, input_tokens, output_tokens),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=metadata.total_token_count if metadata else None,
            ),
            raw=response.model_dump(),
        )


class AdapterRegistry:
    """
    Adapters keyed by provider identifier.

    Built once at startup and only read afterwards.
    """

    def __init__(self, adapters: Optional[Iterable[ProviderAdapter]] = None):
        self._adapters: dict[str, ProviderAdapter] = {}
        for adapter in adapters or ():
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(provider)

    def require(self, provider: str, reason: Optional[str] = None) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnregisteredProviderError(provider, reason)
        return adapter

    @property
    def providers(self) -> list[str]:
        return list(self._adapters.keys())

    def __contains__(self, provider: str) -> bool:
        return provider in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def default_adapters() -> list[ProviderAdapter]:
    """Adapters for every provider with a shipped integration."""
    return [AnthropicAdapter(), OpenAIAdapter(), GoogleAdapter(), MockAdapter()]
