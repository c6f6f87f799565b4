"""Text-generation capability used by the scorer and the writer.

Both consumers only need "prompt in, text out". This module keeps the model
plumbing behind that narrow interface so callers never touch PydanticAI or
OpenAI clients directly, and tests can swap in a fake.

Supported model strings:
    - Remote models in PydanticAI format: 'google-gla:gemini-3-flash-preview'
    - Local OpenAI-compatible servers: 'openai:{model_name}@http://127.0.0.1:8080/v1'

The capability is unreliable by contract: it may raise or return text that
ignores the requested format. Every caller guards it with a fallback.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from openai import AsyncOpenAI
from pydantic_ai import Agent, RunContext
from pydantic_ai.settings import ModelSettings

logger = logging.getLogger(__name__)


@dataclass
class GenerationContext:
    """Runtime context passed to the agent as ``deps``.

    Attributes:
        system: System instructions for this call (empty for none)
    """
    system: str = ""


class TextGenerator(Protocol):
    """Anything that turns a prompt into free-form text."""

    async def generate(self, prompt: str, max_tokens: int, *, system: str | None = None) -> str:
        ...


def _parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[7:]  # Remove "openai:" prefix
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def _create_agent(model: str) -> Agent[GenerationContext, str]:
    """Create a plain-text PydanticAI agent.

    The system prompt is selected per call from the run context, so one
    agent serves every prompt kind.
    """
    agent = Agent(
        model,
        deps_type=GenerationContext,
        output_type=str,
        retries=1,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[GenerationContext]) -> str:
        """Use the caller's system instructions, if any."""
        return ctx.deps.system

    return agent


class ModelTextGenerator:
    """TextGenerator backed by a PydanticAI agent or a local OpenAI server.

    Remote models go through a plain-text PydanticAI Agent so Logfire
    instrumentation and provider handling come for free. Local models are
    called directly with a single user message, since small local servers
    often reject system messages and structured-output options.

    Example:
        >>> generator = ModelTextGenerator("google-gla:gemini-3-flash-preview")
        >>> text = await generator.generate("Say hi", max_tokens=20)
    """

    def __init__(self, model: str):
        self.model = model
        self._local_model = _parse_local_model(model)
        if self._local_model:
            model_name, base_url = self._local_model
            logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
            # Local servers don't need authentication - use placeholder
            self._client = AsyncOpenAI(base_url=base_url, api_key="local-model")
            self._agent = None
        else:
            self._client = None
            self._agent = _create_agent(model)

    async def _generate_local(self, prompt: str, max_tokens: int, system: str | None) -> str:
        model_name, _ = self._local_model
        content = f"{system}\n\n---\n\n{prompt}" if system else prompt
        resp = await self._client.chat.completions.create(
            model=model_name,
            messages=[{"role": "user", "content": content}],
            max_tokens=max_tokens,
            stream=False,
        )
        return (resp.choices[0].message.content or "").strip()

    async def generate(self, prompt: str, max_tokens: int, *, system: str | None = None) -> str:
        """Generate text for a prompt.

        Args:
            prompt: User message
            max_tokens: Completion token budget
            system: Optional system instructions

        Returns:
            Raw model text (may be empty, may ignore the requested format)

        Raises:
            Exception: Any provider or network error, unmodified
        """
        if self._local_model:
            return await self._generate_local(prompt, max_tokens, system)

        result = await self._agent.run(
            prompt,
            deps=GenerationContext(system=system or ""),
            model_settings=ModelSettings(max_tokens=max_tokens),
        )
        usage = result.usage()
        logger.debug(
            "Generated text | model=%s chars=%d tokens=%d/%d",
            self.model,
            len(result.output),
            usage.input_tokens or 0,
            usage.output_tokens or 0,
        )
        return result.output
