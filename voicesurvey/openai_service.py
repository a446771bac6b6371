"""
OpenAI completion service.

The single text-in / text-out capability the conversation engine needs:
one user prompt in, the candidate texts out. Both answer extraction and
question phrasing go through complete(); the engine decides what to do
with zero candidates.

Every call goes to OpenAI - no caching.
"""

import logging
import os
from typing import Any, List, Optional

from openai import AsyncOpenAI, OpenAIError

from survey.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

SERVICE_NAME = "OpenAI"

DEFAULT_MODEL = "gpt-4"


class OpenAICompletionService:
    """Service for calling OpenAI chat completions with a single prompt."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if client is None and not api_key:
            raise RuntimeError("OPENAI_API_KEY is required")

        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model or os.getenv("OPENAI_MODEL", DEFAULT_MODEL)
        logger.info(f"OpenAI completion service configured with model: {self.model}")

    async def close(self):
        await self.client.close()

    async def complete(self, prompt: str) -> List[str]:
        """
        Run one chat completion for a user prompt.

        Args:
            prompt: Full prompt text, sent as a single user message

        Returns:
            Candidate texts in the order OpenAI returned them (may be empty)

        Raises:
            UpstreamUnavailable: If the API call failed
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            logger.error(f"OpenAI completion failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

        candidates = [choice.message.content or "" for choice in response.choices]
        logger.debug(f"OpenAI returned {len(candidates)} candidate(s)")
        return candidates
