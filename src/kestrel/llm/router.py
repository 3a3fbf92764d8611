from __future__ import annotations

import logging

from kestrel.config import Settings, get_settings
from kestrel.llm.prompts import COVER_LETTER_PROMPT, JOB_PERSONA_PROMPT
from kestrel.llm.providers import LLMProvider, ProviderPool

logger = logging.getLogger(__name__)


class LLMRouter:
    """Routes generation and embedding tasks to the configured provider, falling back to the other one.

    Every public call degrades to an empty result instead of raising, so callers
    decide their own fallback.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.pool = ProviderPool(self.settings)

    @property
    def embedding_model(self) -> str:
        return self.settings.llm_model_embedding

    def generate_persona(self, resume_text: str) -> str:
        prompt = JOB_PERSONA_PROMPT.format(resume_text=resume_text)
        text = self._call_text(
            task="writer",
            prompt=prompt,
            model=self.settings.llm_model_generation,
            temperature=self.settings.persona_temperature,
        )
        return text.strip()

    def generate_cover_letter(self, *, job_description: str, profile_text: str) -> str:
        prompt = COVER_LETTER_PROMPT.format(profile_text=profile_text, job_description=job_description)
        text = self._call_text(
            task="writer",
            prompt=prompt,
            model=self.settings.llm_model_generation,
            temperature=self.settings.cover_letter_temperature,
        )
        return text.strip()

    def embed(self, text: str) -> list[float]:
        for provider in self._providers_for("embed"):
            try:
                result = provider.embed(model=self.embedding_model, text=text)
            except Exception as exc:
                logger.warning("Embedding call failed provider=%s error=%s", provider.config.name, exc)
                continue
            if result.vector:
                return result.vector
            logger.warning("Embedding provider=%s returned an empty vector", provider.config.name)
        return []

    def _providers_for(self, task: str) -> list[LLMProvider]:
        provider_name = {
            "writer": self.settings.llm_router_writer_provider,
            "embed": self.settings.llm_router_embed_provider,
        }.get(task, self.settings.llm_router_default)

        if provider_name == "local":
            ordered = [self.pool.local(), self.pool.openai()]
        else:
            ordered = [self.pool.openai(), self.pool.local()]
        return [provider for provider in ordered if self._enabled(provider)]

    def _enabled(self, provider: LLMProvider) -> bool:
        if provider.config.name == "openai":
            return bool(self.settings.openai_api_key)
        if provider.config.name == "local":
            return self.settings.local_llm_enabled
        return True

    def _call_text(self, *, task: str, prompt: str, model: str, temperature: float | None = None) -> str:
        for provider in self._providers_for(task):
            try:
                return provider.complete_text(model=model, prompt=prompt, temperature=temperature).content
            except Exception as exc:
                logger.warning("LLM text call failed provider=%s error=%s", provider.config.name, exc)
        return ""
