"""
Provider-agnostic LLM client used for optional answer synthesis.

Supports Anthropic and OpenAI with a shared text-generation interface.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger("georag.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None

        if self.provider not in ("anthropic", "openai"):
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        if self.provider == "anthropic":
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        try:
            from openai import OpenAI

            self._client = OpenAI(api_key=api_key)
        except ImportError:
            logger.warning("openai package not installed")
        except Exception as e:
            logger.warning("Failed to initialize OpenAI client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: float = 30.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=messages,
            timeout=timeout,
        )
        return (response.choices[0].message.content or "").strip()
