"""Difficulty, age and word-count lookup tables.

Two age tables live here and they are deliberately not inverses of each
other: `calculate_difficulty` is what Easy and Template mode use to turn an
age into a difficulty, `difficulty_to_age` is what Advanced mode uses to
estimate a reader age from a difficulty. calculate_difficulty(5) is 3, but
difficulty_to_age(3) is 5 and difficulty_to_age(5) is 7.
"""

from __future__ import annotations

DEFAULT_WORD_COUNT = 120
DEFAULT_AGE = 7

ADVANCED_AGE_BY_DIFFICULTY: dict[int, int] = {
    1: 3, 2: 4, 3: 5, 4: 6, 5: 7,
    6: 8, 7: 9, 8: 10, 9: 11, 10: 12,
}

WORD_COUNT_TABLE: dict[str, int] = {
    "short": 80,
    "medium": 120,
    "long": 200,
    "1": 80,
    "2": 90,
    "3": 100,
    "4": 110,
    "5": 120,
    "6": 140,
    "7": 160,
    "8": 180,
    "9": 200,
    "10": 250,
}


def calculate_difficulty(age: int | float) -> int:
    """Age → difficulty (Easy/Template table)."""
    if age <= 3:
        return 1
    if age <= 5:
        return 3
    if age <= 7:
        return 5
    if age <= 10:
        return 7
    return 9


def difficulty_to_age(difficulty: int) -> int:
    """Difficulty → estimated reader age (Advanced table). Unknown → 7."""
    return ADVANCED_AGE_BY_DIFFICULTY.get(difficulty, DEFAULT_AGE)


def calculate_word_count(difficulty: str | int | None) -> int:
    """Words per segment for a length label or a 1–10 difficulty.

    Never raises: anything outside the table yields 120.
    """
    if isinstance(difficulty, bool) or difficulty is None:
        return DEFAULT_WORD_COUNT
    return WORD_COUNT_TABLE.get(str(difficulty).strip().lower(), DEFAULT_WORD_COUNT)


def parse_age(value: str | int | float | None) -> float:
    """Parse "7-12", "5" or 5 into a single age. Garbage → 7."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value or "").strip()
    if "-" in text:
        start, _, end = text.partition("-")
        try:
            return (float(start) + float(end)) / 2
        except ValueError:
            return DEFAULT_AGE
    try:
        return int(text)
    except ValueError:
        return DEFAULT_AGE


def vocabulary_guidelines(age: float) -> str:
    if age <= 4:
        return ("Use very simple words (1-2 syllables), short sentences (5-8 words), "
                "and basic concepts. Focus on colors, animals, and familiar objects.")
    if age <= 6:
        return ("Use simple vocabulary (2-3 syllables), short sentences (6-10 words), "
                "and clear cause-and-effect relationships.")
    if age <= 9:
        return ("Use age-appropriate vocabulary with some challenging words, sentences "
                "of 8-12 words, and introduce basic problem-solving concepts.")
    return ("Use varied vocabulary appropriate for the age group, with complex "
            "sentences and advanced concepts when suitable.")
