"""Choice resolution (reader side) and choice parsing (writer side).

Reader side: a selected choice id is mapped back to a zero-based index
before anything is sent to the generation backend. Choices arrive either as
plain strings, whose ids are synthetic ("choice-<n>"), or as objects with
an explicit id.

Writer side: models are asked for three choices "one per line" and rarely
comply exactly. parse_choices() tries line splitting, then sentence
splitting, then delimiter splitting, and tops up with keyword-based
fallbacks so every non-ending segment carries exactly three choices.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

from tale_forge.models import Choice

logger = logging.getLogger(__name__)

CHOICES_PER_SEGMENT = 3

_SYNTHETIC_ID = re.compile(r"^choice-(\d+)$")


class ChoiceResolutionError(LookupError):
    """Raised when a choice id cannot be mapped to an index."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def choice_id(choice: Any, index: int) -> str:
    """The id a reader sees for a choice: explicit if present, else synthetic."""
    if isinstance(choice, Choice):
        return choice.id or f"choice-{index}"
    if isinstance(choice, dict):
        return choice.get("id") or f"choice-{index}"
    return f"choice-{index}"


def choice_text(choice: Any) -> str:
    if isinstance(choice, Choice):
        return choice.text
    if isinstance(choice, dict):
        return str(choice.get("text", ""))
    return str(choice)


def resolve_choice_index(selected_id: str, choices: Sequence[Any]) -> int:
    """Map a selected choice id to its zero-based index.

    Ids are matched against each choice's explicit or synthetic id first.
    For plain-string choice lists a "choice-<n>" id resolves to n on its own,
    whatever the strings say.
    """
    if not choices:
        raise ChoiceResolutionError(f"No choices to resolve {selected_id!r} against")

    for index, choice in enumerate(choices):
        if choice_id(choice, index) == selected_id:
            return index

    if all(isinstance(c, str) for c in choices):
        match = _SYNTHETIC_ID.match(selected_id or "")
        if match:
            return int(match.group(1))

    raise ChoiceResolutionError(f"Choice {selected_id!r} not found")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_FALLBACKS: list[tuple[tuple[str, ...], list[str]]] = [
    (("door", "entrance"), ["Go through the door", "Look for another way", "Wait and listen first"]),
    (("magic", "spell"), ["Use magic to help", "Be careful with the magic", "Ask about the magic"]),
    (("forest", "woods"), ["Follow the forest path", "Look for hidden trails", "Call out for help"]),
    (("castle", "tower"), ["Explore the castle", "Find another entrance", "Look for a way up"]),
    (("dragon", "creature"), ["Approach carefully", "Try to communicate", "Find a safe distance"]),
    (("treasure", "chest"), ["Open the treasure", "Check for traps first", "Look around more"]),
    (("friend", "friendship"), ["Help your friend", "Ask for help", "Work together"]),
    (("scared", "afraid"), ["Take a deep breath", "Find courage within", "Ask for support"]),
    (("lost", "confused"), ["Look for clues", "Ask for directions", "Stay calm and think"]),
    (("adventure", "journey"), ["Continue exploring", "Look for new paths", "Be brave and curious"]),
]
GENERIC_FALLBACKS = ["Continue the adventure", "Look around carefully", "Make a thoughtful choice"]


def contextual_fallbacks(story_text: str) -> list[str]:
    lowered = story_text.lower()
    for keywords, fallbacks in _FALLBACKS:
        if any(k in lowered for k in keywords):
            return list(fallbacks)
    return list(GENERIC_FALLBACKS)


def _split_lines(text: str) -> list[str]:
    results = []
    for line in re.split(r"[\n\r]+", text):
        line = line.strip()
        line = re.sub(r"^\d+[.):]?\s*", "", line)
        line = re.sub(r"^[A-Za-z][.):]\s+", "", line)
        line = re.sub(r"^[-•*.+]\s*", "", line)
        line = re.sub(r"^[\"'`](.*)[\"'`]$", r"\1", line)
        line = line.strip()
        if len(line) > 5 and not re.match(r"^\d+\.?\s*$", line):
            results.append(line)
    return results[:CHOICES_PER_SEGMENT]


def _split_sentences(text: str) -> list[str]:
    joined = re.sub(r"[\n\r]+", " ", text)
    sentences = (s.strip() for s in re.split(r"[.!?]+", joined))
    return [s for s in sentences if 5 < len(s) < 100][:CHOICES_PER_SEGMENT]


def _split_delimited(text: str) -> list[str]:
    results = []
    for part in re.split(r"[,;\n\r|-]+", text):
        part = re.sub(r"^\d+[.):]?\s*", "", part.strip())
        part = re.sub(r"^[A-Za-z][.):]\s*", "", part)
        if 3 < len(part) < 50:
            results.append(part)
    return results[:CHOICES_PER_SEGMENT]


def parse_choice_texts(ai_response: str, story_text: str = "") -> list[str]:
    """Exactly three choice texts extracted from a model response."""
    texts = _split_lines(ai_response)
    if len(texts) < CHOICES_PER_SEGMENT:
        sentences = _split_sentences(ai_response)
        if len(sentences) >= CHOICES_PER_SEGMENT:
            texts = sentences
    if len(texts) < CHOICES_PER_SEGMENT:
        delimited = _split_delimited(ai_response)
        if len(delimited) > len(texts):
            texts = delimited

    if len(texts) < CHOICES_PER_SEGMENT:
        logger.warning(
            "only %d choices parsed from model output, topping up with fallbacks",
            len(texts),
        )
        for fallback in contextual_fallbacks(story_text):
            if len(texts) >= CHOICES_PER_SEGMENT:
                break
            if fallback not in texts:
                texts.append(fallback)
    return texts[:CHOICES_PER_SEGMENT]


def parse_choices(ai_response: str, story_text: str = "") -> list[Choice]:
    return [
        Choice(id=f"choice-{i}", text=text)
        for i, text in enumerate(parse_choice_texts(ai_response, story_text))
    ]
