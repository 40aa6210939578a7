"""LLM prompt template for content relevance judgment.

The oracle receives the user's study goal and the title and description
snippet of the page being viewed, and answers with a single JSON verdict.
"""

from __future__ import annotations

DEFAULT_SNIPPET_CHARS = 300

RELEVANCE_SYSTEM_PROMPT = """You judge whether online content helps a person
achieve their stated study or work goal.

SCORING:
- 8-10: Directly serves the goal (lecture, tutorial, documentation, exam
  material on the goal's topic).
- 4-7: Related or plausibly useful (adjacent topic, background material,
  career-relevant learning outside the exact goal).
- 1-3: Unrelated to the goal (entertainment, gaming, celebrity, pranks,
  compilations, unrelated news).

RULES:
- Judge the content, not the platform. A lecture on a video site can be
  productive; a meme compilation on a learning site is not.
- "productive" is true when score >= 4.
- "reason" is one short sentence the person will read.

Output ONLY JSON: {"productive": true|false, "score": 1-10, "reason": "short explanation"}

EXAMPLES:

Example 1:
Goal: "exam prep: linear algebra"
Title: "Eigenvalues and eigenvectors | Chapter 14, Essence of linear algebra"
→ {"productive": true, "score": 10, "reason": "Lecture on a core linear algebra exam topic"}

Example 2:
Goal: "exam prep: organic chemistry"
Title: "Cute Cats Compilation 2024"
→ {"productive": false, "score": 1, "reason": "Entertainment video unrelated to chemistry"}

Example 3:
Goal: "learn backend development"
Title: "How I structure my study week as a software engineer"
→ {"productive": true, "score": 5, "reason": "Career-related but not backend material"}"""

RELEVANCE_USER_PROMPT_TEMPLATE = """User Study Goal: "{goal}"
Content Title: "{title}"
Content Description (snippet): "{snippet}"

Does this content help the user achieve their goal?
Respond with ONLY a JSON object."""


def make_snippet(description: str | None, max_chars: int = DEFAULT_SNIPPET_CHARS) -> str:
    """Trim a page description to the snippet sent to the oracle."""
    if not description:
        return "No description provided"
    return str(description)[:max_chars]


def format_relevance_prompt(
    goal: str,
    title: str,
    description: str | None,
    max_chars: int = DEFAULT_SNIPPET_CHARS,
) -> str:
    """Format the relevance user prompt.

    Args:
        goal: The user's stated goal.
        title: Page title.
        description: Page description, or None.
        max_chars: Maximum description snippet length.

    Returns:
        Formatted user prompt string.
    """
    return RELEVANCE_USER_PROMPT_TEMPLATE.format(
        goal=goal,
        title=title,
        snippet=make_snippet(description, max_chars),
    )
