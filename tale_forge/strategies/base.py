"""Six-phase story generation pipeline shared by every creation mode.

generate_story() is a template method:

  1. validate_input            — mode-specific required fields; stops here on failure
  2. transform_data            — trim strings, drop blank traits, derive word count
  3. enrich_with_defaults      — fill genre/template defaults, never overwrite
  4. apply_mode_specific_logic — mode-unique enhancement
  5. generate_prompt           — one instruction block for the text backend
  6. build_story_object        — partial story record with a metadata bag

Phases are pure: no I/O and no randomness apart from title selection, which
draws from the injected random.Random.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from tale_forge import difficulty as mapper
from tale_forge.models import CreationMode, GenerationContext, GenerationResult, ValidationResult

logger = logging.getLogger(__name__)


def clean(value: Any) -> str:
    """Trimmed string, or "" for None."""
    if value is None:
        return ""
    return str(value).strip()


def clean_traits(traits: list[Any] | None) -> list[str]:
    return [t for t in (clean(t) for t in traits or []) if t]


def fill_missing(data: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Copy of data with every empty field taken from defaults."""
    merged = dict(data)
    for key, value in defaults.items():
        if not merged.get(key):
            merged[key] = value
    return merged


class GenerationStrategy(ABC):
    """Base class for the Easy, Template and Advanced strategies."""

    def __init__(self, mode: CreationMode, rng: random.Random | None = None) -> None:
        self.mode = mode
        self._rng = rng or random.Random()

    def generate_story(self, context: GenerationContext) -> GenerationResult:
        validation = self.validate_input(context.raw_data)
        if not validation.is_valid:
            logger.info(
                "validation failed mode=%s user=%s errors=%d",
                self.mode.value, context.user_id, len(validation.errors),
            )
            return GenerationResult(
                story={},
                validation_errors=validation.errors,
                warnings=validation.warnings,
            )

        data = self.transform_data(context.raw_data)
        data = self.enrich_with_defaults(data)
        data = self.apply_mode_specific_logic(data, context)
        prompt = self.generate_prompt(data)
        story = self.build_story_object(data, prompt, context)

        elapsed = datetime.now(timezone.utc) - context.metadata.created_at
        processing_time = int(elapsed.total_seconds() * 1000)
        logger.debug(
            "story generated mode=%s prompt_len=%d processing_ms=%d",
            self.mode.value, len(prompt), processing_time,
        )
        return GenerationResult(
            story=story,
            warnings=validation.warnings,
            metadata={"mode": self.mode.value, "processing_time": processing_time},
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_input(self, raw: dict[str, Any]) -> ValidationResult: ...

    @abstractmethod
    def transform_data(self, raw: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    def enrich_with_defaults(self, data: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    def apply_mode_specific_logic(
        self, data: dict[str, Any], context: GenerationContext
    ) -> dict[str, Any]: ...

    @abstractmethod
    def generate_prompt(self, data: dict[str, Any]) -> str: ...

    @abstractmethod
    def build_story_object(
        self, data: dict[str, Any], prompt: str, context: GenerationContext
    ) -> dict[str, Any]: ...

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def calculate_difficulty(self, age: int | float) -> int:
        return mapper.calculate_difficulty(age)

    def calculate_word_count(self, difficulty: str | int | None) -> int:
        return mapper.calculate_word_count(difficulty)

    def difficulty_to_age(self, difficulty: int) -> int:
        return mapper.difficulty_to_age(difficulty)

    def choose(self, candidates: list[str]) -> str:
        return self._rng.choice(candidates)

    def generate_story_title(self, data: dict[str, Any]) -> str:
        name = data.get("character_name") or data.get("child_name", "")
        genre = data.get("genre", "")
        theme = data.get("theme", "")
        return self.choose([
            f"{name}'s {genre} Adventure",
            f"The {theme} of {name}",
            f"{name} and the {genre} Quest",
            f"A {theme} Tale of {name}",
        ])
