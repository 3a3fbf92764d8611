from __future__ import annotations

import json
import logging
from pathlib import Path

from kestrel.llm.router import LLMRouter
from kestrel.types import Profile

logger = logging.getLogger(__name__)


def build_profile(raw_text: str, router: LLMRouter) -> Profile:
    """Build the matching profile for a resume.

    The persona vector embeds an LLM-written "ideal next job" description, not
    the resume itself, so it sits in the same space as the job titles and
    descriptions it is compared with. ``raw_text`` is kept verbatim for drafting.
    """
    text = raw_text.strip()
    if not text:
        raise ValueError("resume text is empty")

    persona = router.generate_persona(text)
    if not persona:
        logger.warning("Persona generation failed; embedding the resume text instead")
        persona = text

    vector = router.embed(persona)
    if not vector:
        logger.warning("Persona embedding is empty; relevance checks will be indeterminate")

    return Profile(raw_text=text, persona_text=persona, persona_vector=vector, has_profile=True)


def save_profile(profile: Profile, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(profile.model_dump_json(indent=2), encoding="utf-8")
    return path


def load_profile(path: Path) -> Profile | None:
    if not path.is_file():
        return None
    try:
        return Profile.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValueError) as exc:
        logger.error("Failed to load profile from %s: %s", path, exc)
        return None
