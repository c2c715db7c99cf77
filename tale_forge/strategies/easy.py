"""Easy mode: a length, a genre and a hero name are enough."""

from __future__ import annotations

from typing import Any

from tale_forge.models import CreationMode, GenerationContext, ValidationResult
from tale_forge.prompts import EASY_PROMPT, render_prompt

from .base import GenerationStrategy, clean, clean_traits, fill_missing

DEFAULT_TRAITS = ["brave", "curious", "kind"]
DEFAULT_MORAL_LESSON = "Kindness and perseverance lead to success"
DEFAULT_READER_AGE = 5

GENRE_DEFAULTS: dict[str, dict[str, str]] = {
    "adventure": {
        "theme": "Courage and Discovery",
        "atmosphere": "Exciting and Mysterious",
        "setting": "Enchanted Forest",
    },
    "fantasy": {
        "theme": "Magic and Wonder",
        "atmosphere": "Mystical and Dreamlike",
        "setting": "Magical Kingdom",
    },
    "space": {
        "theme": "Exploration and Science",
        "atmosphere": "Futuristic and Vast",
        "setting": "Distant Galaxy",
    },
    "animals": {
        "theme": "Friendship and Nature",
        "atmosphere": "Warm and Playful",
        "setting": "Forest Meadow",
    },
}

GENRE_CONFLICTS: dict[str, str] = {
    "adventure": "Must find a hidden treasure",
    "fantasy": "Must save the kingdom from darkness",
    "space": "Must return home from a distant planet",
    "animals": "Must help a friend in need",
}
DEFAULT_CONFLICT = "Must overcome a challenge"


class EasyModeStrategy(GenerationStrategy):
    def __init__(self, rng=None) -> None:
        super().__init__(CreationMode.EASY, rng)

    def validate_input(self, raw: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        name = clean(raw.get("characterName"))

        if not raw.get("difficulty"):
            errors.append("Story length is required")
        if not clean(raw.get("genre")):
            errors.append("Genre selection is required")
        if len(name) < 2:
            errors.append("Character name must be at least 2 characters")
        if len(name) > 20:
            warnings.append("Character name is quite long, consider shortening it")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def transform_data(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "character_name": clean(raw.get("characterName")),
            "genre": clean(raw.get("genre")).lower(),
            "difficulty": raw.get("difficulty"),
            "traits": clean_traits(raw.get("characterTraits")),
            "story_seed": clean(raw.get("storySeed")),
            "word_count": self.calculate_word_count(raw.get("difficulty")),
        }

    def enrich_with_defaults(self, data: dict[str, Any]) -> dict[str, Any]:
        genre_defaults = GENRE_DEFAULTS.get(data["genre"], GENRE_DEFAULTS["adventure"])
        return fill_missing(data, {
            **genre_defaults,
            "time_period": "Contemporary",
            "moral_lesson": DEFAULT_MORAL_LESSON,
        })

    def apply_mode_specific_logic(
        self, data: dict[str, Any], context: GenerationContext
    ) -> dict[str, Any]:
        data = dict(data)
        if not data.get("traits"):
            data["traits"] = list(DEFAULT_TRAITS)
        data["conflict"] = GENRE_CONFLICTS.get(data["genre"], DEFAULT_CONFLICT)
        return data

    def generate_prompt(self, data: dict[str, Any]) -> str:
        return render_prompt(EASY_PROMPT, {
            "genre": data["genre"],
            "character_name": data["character_name"],
            "traits": ", ".join(data["traits"]),
            "setting": data["setting"],
            "theme": data["theme"],
            "conflict": data["conflict"],
            "word_count": data["word_count"],
            "story_seed": data["story_seed"],
        })

    def build_story_object(
        self, data: dict[str, Any], prompt: str, context: GenerationContext
    ) -> dict[str, Any]:
        hero = {
            "id": "main",
            "name": data["character_name"],
            "description": f"The hero of this {data['genre']} story",
            "role": "main",
            "traits": data["traits"],
        }
        return {
            "title": self.generate_story_title(data),
            "child_name": data["character_name"],
            "genre": data["genre"],
            "theme": data["theme"],
            "setting": data["setting"],
            "difficulty": self.calculate_difficulty(DEFAULT_READER_AGE),
            "moral_lesson": data["moral_lesson"],
            "prompt": prompt,
            "creation_mode": self.mode.value,
            "metadata": {
                "characters": [hero],
                "traits": data["traits"],
                "atmosphere": data["atmosphere"],
                "conflict": data["conflict"],
                "story_seed": data["story_seed"],
                "word_count": data["word_count"],
                "words_per_chapter": data["word_count"],
                "target_age": DEFAULT_READER_AGE,
            },
        }
