"""Advanced mode: the full five-step wizard, every story element user supplied."""

from __future__ import annotations

from typing import Any

from tale_forge.models import CreationMode, GenerationContext, ValidationResult
from tale_forge.prompts import ADVANCED_PROMPT, character_lines, render_prompt

from .base import GenerationStrategy, clean, clean_traits

MAX_CHARACTERS = 10

VISUALS: dict[str, str] = {
    "mysterious": "Shadows dance, mist swirls, dim lighting",
    "bright": "Vibrant colors, clear skies, sparkling elements",
    "cozy": "Warm colors, soft textures, inviting spaces",
    "adventurous": "Wide vistas, varied terrain, dynamic elements",
}

SOUNDS: dict[str, str] = {
    "forest": "Rustling leaves, bird songs, crackling twigs",
    "city": "Bustling crowds, traffic, urban rhythms",
    "ocean": "Crashing waves, seagulls, ocean breeze",
    "space": "Humming engines, beeping computers, vast silence",
}

REQUIRED_FIELDS = [
    ("genre", "Genre is required"),
    ("theme", "Theme is required"),
    ("location", "Location is required"),
    ("timePeriod", "Time period is required"),
    ("atmosphere", "Atmosphere is required"),
    ("conflict", "Story conflict is required"),
    ("quest", "Quest or goal is required"),
]


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _keyword_lookup(text: str, table: dict[str, str], fallback: str) -> str:
    lowered = text.lower()
    for key, value in table.items():
        if key in lowered:
            return value
    return fallback


class AdvancedModeStrategy(GenerationStrategy):
    def __init__(self, rng=None) -> None:
        super().__init__(CreationMode.ADVANCED, rng)

    def validate_input(self, raw: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if len(clean(raw.get("childName"))) < 2:
            errors.append("Child name must be at least 2 characters")

        difficulty = _as_int(raw.get("difficulty"))
        if difficulty is None or not 1 <= difficulty <= 10:
            errors.append("Difficulty must be between 1 and 10")

        words = _as_int(raw.get("wordsPerChapter"))
        if words is None or not 50 <= words <= 500:
            errors.append("Words per chapter must be between 50 and 500")

        characters = raw.get("characters") or []
        if not characters:
            errors.append("At least one character is required")
        else:
            if not any(c.get("role") == "main" for c in characters):
                warnings.append("No main character designated")
            if len(characters) > MAX_CHARACTERS:
                warnings.append("Too many characters may make the story complex")

        for field, message in REQUIRED_FIELDS:
            if not clean(raw.get(field)):
                errors.append(message)

        if not clean(raw.get("moralLesson")):
            warnings.append("No moral lesson specified")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def transform_data(self, raw: dict[str, Any]) -> dict[str, Any]:
        words = int(raw["wordsPerChapter"])
        return {
            "child_name": clean(raw["childName"]),
            "difficulty": int(raw["difficulty"]),
            "words_per_chapter": words,
            "word_count": words,
            "genre": clean(raw["genre"]),
            "theme": clean(raw["theme"]),
            "characters": [
                {
                    "id": clean(c.get("id")) or f"character-{i}",
                    "name": clean(c.get("name")),
                    "description": clean(c.get("description")),
                    "role": clean(c.get("role")) or "supporting",
                    "traits": clean_traits(c.get("traits")),
                }
                for i, c in enumerate(raw["characters"])
            ],
            "location": clean(raw["location"]),
            "time_period": clean(raw["timePeriod"]),
            "atmosphere": clean(raw["atmosphere"]),
            "setting_description": clean(raw.get("settingDescription")),
            "conflict": clean(raw["conflict"]),
            "quest": clean(raw["quest"]),
            "moral_lesson": clean(raw.get("moralLesson")),
            "additional_details": clean(raw.get("additionalDetails")),
            "special_requests": clean(raw.get("specialRequests")),
            "avoid_topics": clean_traits(raw.get("avoidTopics")),
        }

    def enrich_with_defaults(self, data: dict[str, Any]) -> dict[str, Any]:
        # The wizard collects everything; only derived guidance is added.
        return {
            **data,
            "estimated_age": self.difficulty_to_age(data["difficulty"]),
            "story_structure": self.determine_structure(data["words_per_chapter"]),
            "narrative_style": self.determine_narrative_style(data["difficulty"]),
            "language_complexity": self.determine_language_complexity(data["difficulty"]),
        }

    def apply_mode_specific_logic(
        self, data: dict[str, Any], context: GenerationContext
    ) -> dict[str, Any]:
        data = dict(data)
        characters = [dict(c) for c in data["characters"]]
        main = next((c for c in characters if c["role"] == "main"), None)
        if main is not None and not main["name"]:
            main["name"] = data["child_name"]
        data["characters"] = characters

        data["character_relationships"] = self.character_relationships(characters)
        data["enhanced_setting"] = self.enhance_setting(data)
        data["plot_structure"] = self.plot_structure(data)
        data["pacing_guidelines"] = self.determine_pacing(
            data["words_per_chapter"], data["difficulty"]
        )
        return data

    def generate_prompt(self, data: dict[str, Any]) -> str:
        return render_prompt(ADVANCED_PROMPT, {
            **data,
            "character_lines": character_lines(data["characters"]),
            "avoid_topics": ", ".join(data["avoid_topics"]),
        })

    def build_story_object(
        self, data: dict[str, Any], prompt: str, context: GenerationContext
    ) -> dict[str, Any]:
        return {
            "title": self.generate_advanced_title(data),
            "child_name": data["child_name"],
            "genre": data["genre"],
            "theme": data["theme"],
            "setting": f"{data['location']} - {data['time_period']}",
            "difficulty": data["difficulty"],
            "moral_lesson": data["moral_lesson"],
            "prompt": prompt,
            "creation_mode": self.mode.value,
            "metadata": {
                "characters": data["characters"],
                "atmosphere": data["atmosphere"],
                "setting_description": data["setting_description"],
                "conflict": data["conflict"],
                "quest": data["quest"],
                "words_per_chapter": data["words_per_chapter"],
                "target_age": data["estimated_age"],
                "additional_details": data["additional_details"],
                "special_requests": data["special_requests"],
                "avoid_topics": data["avoid_topics"],
                "character_relationships": data["character_relationships"],
                "plot_structure": data["plot_structure"],
                "narrative_style": data["narrative_style"],
                "language_complexity": data["language_complexity"],
            },
        }

    # ------------------------------------------------------------------
    # Advanced-only helpers
    # ------------------------------------------------------------------

    @staticmethod
    def determine_structure(words_per_chapter: int) -> str:
        if words_per_chapter < 100:
            return "Short episodic chapters"
        if words_per_chapter < 200:
            return "Standard chapter structure"
        return "Extended narrative chapters"

    @staticmethod
    def determine_narrative_style(difficulty: int) -> str:
        if difficulty <= 3:
            return "Simple, present tense, direct narration"
        if difficulty <= 6:
            return "Past tense with basic descriptions"
        if difficulty <= 8:
            return "Rich descriptions with varied sentence structure"
        return "Complex narrative with subplots and foreshadowing"

    @staticmethod
    def determine_language_complexity(difficulty: int) -> str:
        if difficulty <= 3:
            return "Basic vocabulary, simple sentences"
        if difficulty <= 6:
            return "Moderate vocabulary, compound sentences"
        if difficulty <= 8:
            return "Advanced vocabulary, complex sentences"
        return "Sophisticated language with literary devices"

    @staticmethod
    def determine_pacing(words_per_chapter: int, difficulty: int) -> str:
        if words_per_chapter < 150:
            pace = "Quick"
        elif words_per_chapter < 250:
            pace = "Moderate"
        else:
            pace = "Deliberate"
        if difficulty < 4:
            complexity = "simple"
        elif difficulty < 7:
            complexity = "moderate"
        else:
            complexity = "complex"
        return f"{pace} pacing with {complexity} plot development"

    @staticmethod
    def character_relationships(characters: list[dict[str, Any]]) -> str:
        if len(characters) < 2:
            return "Focus on main character's internal journey"
        main = next((c for c in characters if c["role"] == "main"), None)
        main_name = main["name"] if main and main["name"] else "Main character"
        lines = []
        for char in characters:
            if char["role"] == "main":
                continue
            relation = "conflicts with" if char["role"] == "antagonist" else "allies with"
            lines.append(f"{main_name} {relation} {char['name']}")
        return "\n".join(lines)

    @staticmethod
    def enhance_setting(data: dict[str, Any]) -> str:
        visual = _keyword_lookup(data["atmosphere"], VISUALS, "Rich, detailed visual environment")
        auditory = _keyword_lookup(data["location"], SOUNDS, "Ambient environmental sounds")
        return (
            "Enhanced Setting Elements:\n"
            f"- Visual: {visual}\n"
            f"- Auditory: {auditory}\n"
            f"- Emotional: {data['atmosphere']}\n"
            f"- Cultural Context: {data['time_period']}"
        )

    @staticmethod
    def plot_structure(data: dict[str, Any]) -> str:
        return (
            f"1. Setup: Introduce {data['child_name']} in {data['location']}\n"
            f"2. Inciting Incident: {data['conflict']} emerges\n"
            f"3. Rising Action: Quest for {data['quest']} begins\n"
            f"4. Climax: Major challenge testing {data['theme']}\n"
            f"5. Resolution: {data['moral_lesson'] or 'A lesson'} realized"
        )

    def generate_advanced_title(self, data: dict[str, Any]) -> str:
        name, genre, theme, quest = (
            data["child_name"], data["genre"], data["theme"], data["quest"],
        )
        return self.choose([
            f"{name} and the {quest}",
            f"The {theme} Chronicles: {name}'s Journey",
            f"{name}: A {genre} Tale of {theme}",
            f"The {quest}: {name}'s {genre} Adventure",
        ])
