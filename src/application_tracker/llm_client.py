import os
from typing import Dict, List, Optional

from anthropic import Anthropic
from loguru import logger
from openai import OpenAI

LLMMessage = Dict[str, str]

DEFAULT_MAX_TOKENS = 1024


class LLMClient:
    """Sends role-tagged chat messages to OpenAI or Anthropic depending on the model name.

    SDK errors (timeouts, auth, rate limits) are not caught here; retrying is
    left to the caller.
    """

    def __init__(self, openai_api_key: Optional[str] = None, anthropic_api_key: Optional[str] = None,
                 max_tokens: int = DEFAULT_MAX_TOKENS):
        self._openai_key = openai_api_key or os.getenv("OPENAI_API_KEY")
        self._anthropic_key = anthropic_api_key or os.getenv("ANTHROPIC_API_KEY")
        self.max_tokens = max_tokens
        self._openai: Optional[OpenAI] = None
        self._anthropic: Optional[Anthropic] = None

    @staticmethod
    def provider_for(model: str) -> str:
        return "anthropic" if model.lower().startswith("claude") else "openai"

    def _openai_client(self) -> OpenAI:
        if self._openai is None:
            self._openai = OpenAI(api_key=self._openai_key)
        return self._openai

    def _anthropic_client(self) -> Anthropic:
        if self._anthropic is None:
            self._anthropic = Anthropic(api_key=self._anthropic_key)
        return self._anthropic

    def complete(self, messages: List[LLMMessage], model: str, terse: bool = False) -> str:
        """Return the text of the model's reply.

        ``terse`` asks for deterministic output (temperature 0), used when the
        prompt expects nothing but tagged answers.
        """
        provider = self.provider_for(model)
        logger.debug("[LLM] {} request to {} ({} message(s))", provider, model, len(messages))
        if provider == "anthropic":
            kwargs = {"temperature": 0.0} if terse else {}
            response = self._anthropic_client().messages.create(
                model=model,
                max_tokens=self.max_tokens,
                messages=messages,
                **kwargs,
            )
            text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        else:
            kwargs = {"temperature": 0} if terse else {}
            response = self._openai_client().chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.max_tokens,
                **kwargs,
            )
            text = response.choices[0].message.content or ""
        logger.debug("[LLM] {} replied with {} chars", model, len(text))
        return text
