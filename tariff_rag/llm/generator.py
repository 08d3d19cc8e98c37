"""
Text generation service client.

Thin wrapper over OpenAI chat completions. Returns raw text; decoding and
validation belong to the caller (see tariff_rag.llm.schemas).
"""

import logging
from typing import Optional

from openai import OpenAI

from tariff_rag.errors import GenerationServiceError

logger = logging.getLogger(__name__)


class OpenAIGenerator:
    """
    Usage:
        generator = OpenAIGenerator(api_key=settings.openai_api_key)
        text = generator.generate("Return JSON ...", system="You are ...")
    """

    DEFAULT_SYSTEM_PROMPT = "You are a precise assistant. Respond with valid JSON only."

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout: float = 60,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or OpenAI(api_key=api_key, timeout=timeout)

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system or self.DEFAULT_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise GenerationServiceError(f"Generation request failed: {e}") from e

        content = response.choices[0].message.content
        return content or ""
