"""OpenAI chat completion service for grounded answers."""

from typing import Optional

from openai import AsyncOpenAI

from docdialogue.core.config import settings
from docdialogue.core.exceptions import LLMError


class LLMService:
    """Single-shot chat completions; callers own prompt construction."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> None:
        """Initialize the LLM service."""
        self._client = client
        self.model = model or settings.llm_model
        self.temperature = (
            settings.llm_temperature if temperature is None else temperature)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.http_timeout_seconds,
            )
        return self._client

    async def complete(self, system: str, user: str) -> str:
        """
        Run one chat completion, without retry.

        Args:
            system: System instruction.
            user: User message.

        Returns:
            The trimmed completion text ("" if the model returned nothing).

        Raises:
            LLMError: If the completion call fails.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.temperature,
            )
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()
