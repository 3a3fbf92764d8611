from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from kestrel.llm.router import LLMRouter

logger = logging.getLogger(__name__)

FALLBACK_COVER_LETTER = (
    "Hi! I'm interested in this role. Based on my experience and skills, "
    "I believe I would be a great fit for your team."
)

CoverLetterGenerator = Callable[[str, str], str]


def router_generator(router: LLMRouter) -> CoverLetterGenerator:
    def generate(description: str, profile_text: str) -> str:
        return router.generate_cover_letter(job_description=description, profile_text=profile_text)

    return generate


class Drafter:
    """Writes the cover-letter body for a matched job. Never raises."""

    def __init__(self, generate: CoverLetterGenerator):
        self.generate = generate

    async def draft(self, description: str, profile_raw_text: str) -> str:
        try:
            text = await asyncio.to_thread(self.generate, description, profile_raw_text)
        except Exception as exc:
            logger.warning("Cover letter generation failed, using template: %s", exc)
            return FALLBACK_COVER_LETTER

        text = (text or "").strip()
        if not text:
            logger.warning("Cover letter generation returned nothing, using template")
            return FALLBACK_COVER_LETTER
        return text
