"""Template mode: a prepared story world, personalised with the child's name."""

from __future__ import annotations

import math
from typing import Any

from tale_forge.difficulty import parse_age
from tale_forge.models import CreationMode, GenerationContext, ValidationResult
from tale_forge.prompts import TEMPLATE_PROMPT, character_lines, render_prompt

from .base import GenerationStrategy, clean, clean_traits, fill_missing

READING_WORDS_PER_MINUTE = 150

# Fallbacks for templates that leave a field blank.
TEMPLATE_DEFAULTS: dict[str, Any] = {
    "setting": "A magical place",
    "time_period": "Timeless",
    "atmosphere": "Warm and inviting",
    "conflict": "Overcoming challenges",
    "quest": "Overcome challenges",
    "moral_lesson": "Friendship and courage",
    "target_age": 7,
    "words_per_chapter": 120,
}


class TemplateModeStrategy(GenerationStrategy):
    def __init__(self, rng=None) -> None:
        super().__init__(CreationMode.TEMPLATE, rng)

    def validate_input(self, raw: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        template = raw.get("template")
        customizations = raw.get("customizations") or {}

        if not raw.get("templateId") or not template:
            errors.append("Template selection is required")
        if len(clean(raw.get("childName"))) < 2:
            errors.append("Child name must be at least 2 characters")
        if template and not template.get("settings"):
            errors.append("Invalid template structure")
        if len(customizations.get("additionalTraits") or []) > 5:
            warnings.append("Too many additional traits may dilute character focus")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def transform_data(self, raw: dict[str, Any]) -> dict[str, Any]:
        template = raw["template"]
        settings = template["settings"]
        customizations = raw.get("customizations") or {}
        custom_names = customizations.get("characterNames") or {}

        characters = []
        for i, char in enumerate(settings.get("characters") or []):
            char_id = char.get("id") or f"character-{i + 1}"
            characters.append({
                "id": char_id,
                "name": clean(custom_names.get(char_id) or char.get("name")),
                "description": clean(char.get("description")),
                "role": clean(char.get("role")) or "supporting",
                "traits": clean_traits(char.get("traits")),
            })

        return {
            "template_id": raw["templateId"],
            "template_name": clean(template.get("name")),
            "child_name": clean(raw.get("childName")),
            "genre": clean(settings.get("genre")),
            "theme": clean(settings.get("theme")),
            "characters": characters,
            "setting": clean(settings.get("setting")),
            "time_period": clean(settings.get("timePeriod")),
            "atmosphere": clean(settings.get("atmosphere")),
            "conflict": clean(settings.get("conflict")),
            "quest": clean(settings.get("quest")),
            "moral_lesson": clean(settings.get("moralLesson")),
            "target_age": settings.get("targetAge"),
            "words_per_chapter": settings.get("wordsPerChapter"),
            "customizations": {
                "character_names": dict(custom_names),
                "setting_details": clean(customizations.get("settingDetails")),
                "additional_traits": clean_traits(customizations.get("additionalTraits")),
            },
        }

    def enrich_with_defaults(self, data: dict[str, Any]) -> dict[str, Any]:
        data = fill_missing(data, TEMPLATE_DEFAULTS)
        data.setdefault("difficulty", self.calculate_difficulty(parse_age(data["target_age"])))
        data.setdefault(
            "estimated_reading_time",
            math.ceil(int(data["words_per_chapter"]) / READING_WORDS_PER_MINUTE),
        )
        data.setdefault("interactive_elements", True)
        data.setdefault(
            "illustration_style",
            "cartoon" if "whimsical" in data["atmosphere"].lower() else "realistic",
        )
        return data

    def apply_mode_specific_logic(
        self, data: dict[str, Any], context: GenerationContext
    ) -> dict[str, Any]:
        data = dict(data)
        characters = [dict(c) for c in data["characters"]]
        customizations = data["customizations"]

        main = next((c for c in characters if c["role"] == "main"), None)
        if main is not None:
            main["name"] = data["child_name"]
            if customizations["additional_traits"]:
                main["traits"] = main["traits"] + customizations["additional_traits"]
        data["characters"] = characters

        if customizations["setting_details"]:
            data["setting"] = f"{data['setting']} - {customizations['setting_details']}"
        return data

    def generate_prompt(self, data: dict[str, Any]) -> str:
        return render_prompt(TEMPLATE_PROMPT, {
            **data,
            "character_lines": character_lines(data["characters"]),
        })

    def build_story_object(
        self, data: dict[str, Any], prompt: str, context: GenerationContext
    ) -> dict[str, Any]:
        return {
            "title": f"{data['child_name']} in {data['template_name']}",
            "child_name": data["child_name"],
            "genre": data["genre"],
            "theme": data["theme"],
            "setting": data["setting"],
            "difficulty": data["difficulty"],
            "moral_lesson": data["moral_lesson"],
            "prompt": prompt,
            "creation_mode": self.mode.value,
            "template_id": data["template_id"],
            "metadata": {
                "template_name": data["template_name"],
                "characters": data["characters"],
                "atmosphere": data["atmosphere"],
                "time_period": data["time_period"],
                "conflict": data["conflict"],
                "quest": data["quest"],
                "target_age": data["target_age"],
                "words_per_chapter": data["words_per_chapter"],
                "estimated_reading_time": data["estimated_reading_time"],
                "illustration_style": data["illustration_style"],
                "customizations": data["customizations"],
            },
        }
