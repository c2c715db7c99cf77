"""Handlebars prompt rendering and the default prompt templates.

Every prompt sent to a text backend is rendered from one of the templates
below. Values are inserted with triple-stash (`{{{...}}}`) so apostrophes in
names and settings reach the model unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def character_lines(characters: list[dict[str, Any]]) -> str:
    """One "- Name (role): description. Traits: a, b" line per character."""
    return "\n".join(
        f"- {c.get('name', '')} ({c.get('role', '')}): {c.get('description', '')}. "
        f"Traits: {', '.join(c.get('traits', []))}"
        for c in characters
    )


# ── Story creation prompts ───────────────────────────────

EASY_PROMPT = """\
Create a {{{genre}}} story for young children featuring {{{character_name}}}, \
who is {{{traits}}}.

Setting: {{{setting}}}
Theme: {{{theme}}}
Main Challenge: {{{conflict}}}
Story Length: Approximately {{{word_count}}} words per segment
{{#if story_seed}}Story Idea: {{{story_seed}}}
{{/if}}
Requirements:
- Age-appropriate language and themes
- Positive and encouraging tone
- Clear moral lesson
- Interactive choices at key moments
- Vivid but simple descriptions\
"""

TEMPLATE_PROMPT = """\
Create a {{{genre}}} story based on the "{{{template_name}}}" template.

Main Character: {{{child_name}}}
Theme: {{{theme}}}
Setting: {{{setting}}} ({{{time_period}}})
Atmosphere: {{{atmosphere}}}

Characters:
{{{character_lines}}}

Plot Elements:
- Main Conflict: {{{conflict}}}
- Quest/Goal: {{{quest}}}
- Moral Lesson: {{{moral_lesson}}}

Requirements:
- Target age: {{{target_age}}} years old
- Word count per segment: {{{words_per_chapter}}}
- Maintain template structure and pacing
- Include interactive decision points
- Stay true to the template's established world\
"""

ADVANCED_PROMPT = """\
Create an advanced, carefully crafted {{{genre}}} story with the following specifications:

STORY FOUNDATION:
- Main Character: {{{child_name}}}
- Theme: {{{theme}}}
- Difficulty Level: {{{difficulty}}}/10 (Age ~{{{estimated_age}}})
- Words per segment: {{{words_per_chapter}}}

WORLD BUILDING:
- Location: {{{location}}}
- Time Period: {{{time_period}}}
- Atmosphere: {{{atmosphere}}}
- Setting Details: {{{setting_description}}}
{{{enhanced_setting}}}

CHARACTERS:
{{{character_lines}}}

Character Relationships:
{{{character_relationships}}}

PLOT STRUCTURE:
- Central Conflict: {{{conflict}}}
- Quest/Goal: {{{quest}}}
- Moral Lesson: {{{moral_lesson}}}
- Additional Context: {{{additional_details}}}

Plot Arc:
{{{plot_structure}}}

WRITING GUIDELINES:
- Narrative Style: {{{narrative_style}}}
- Language Complexity: {{{language_complexity}}}
- Pacing: {{{pacing_guidelines}}}
- Include rich descriptions and character development
- Create meaningful interactive choice points
- Ensure emotional depth appropriate for age\
{{#if avoid_topics}}

Topics to avoid: {{{avoid_topics}}}{{/if}}\
{{#if special_requests}}

Special requests: {{{special_requests}}}{{/if}}

Create a sophisticated, engaging story that balances all these elements while \
maintaining age-appropriateness and educational value.\
"""

# ── Continuation prompts ─────────────────────────────────

SYSTEM_PROMPT = (
    "You are an expert children's story writer who creates engaging, "
    "age-appropriate stories with positive messages."
)

SEGMENT_PROMPT = """\
{{{story_prompt}}}

Write the next segment of this interactive story ({{{title}}}). \
Aim for about {{{word_count}}} words in 2-3 short paragraphs and end with an \
engaging moment that leads to a choice. Keep the language simple but engaging.\
{{#if previous_segment}}

Previous story segment: {{{previous_segment}}}{{/if}}\
{{#if chosen}}

The reader chose: {{{chosen}}}{{/if}}

Return only the story text, without a title or heading.\
"""

CHOICES_PROMPT = """\
Based on the following story segment for a child aged {{{age}}}, create 3 \
simple choices the child can make that would continue the story in different \
directions:

{{{segment}}}

Each choice should be a short phrase (5-10 words) that describes an action or \
decision. Return only the 3 choices, one per line.\
"""

ENDING_PROMPT = """\
You are writing the FINAL CONCLUSION of an interactive children's story. This \
must be a definitive, satisfying ending that wraps up everything.

STORY CONTEXT:
- Title: "{{{title}}}"
- Genre: {{{genre}}}
- Target Age: {{{age}}} years old
- Theme: {{{theme}}}
- Setting: {{{setting}}}
- Main Quest: {{{quest}}}
- Moral Lesson: {{{moral_lesson}}}
- Conflict Resolution: {{{conflict}}}

CURRENT STORY:
{{{story_so_far}}}

CRITICAL ENDING REQUIREMENTS:
- Write approximately {{{ending_words}}} words
- Age: {{{age}}} years old - {{{vocabulary}}}
- This is the ABSOLUTE FINAL segment - no more story after this
- COMPLETELY resolve the quest: "{{{quest}}}"
- Provide closure for ALL characters and plot threads
- Reinforce the moral lesson: "{{{moral_lesson}}}"
- NO cliffhangers, NO unresolved mysteries, NO new challenges
- Do NOT include the story title in your response

Create a definitive, heartwarming finale that gives children complete \
closure and satisfaction.\
"""
