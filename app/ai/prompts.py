"""Prompt templates for moderation, summaries, tagging and quiz generation."""

from __future__ import annotations

SYSTEM_CONTEXT = """You are an AI assistant for Masjid At-Taqwa, an Islamic educational institution serving the American Muslim community. You analyze educational content related to Islamic studies including Quran, Hadith, Fiqh, Seerah, Aqeedah, Arabic language, and Islamic ethics.

Guidelines:
- Respect all schools of thought (madhahib) in Islam. Do not flag legitimate scholarly differences.
- Be sensitive to the diversity of the American Muslim community.
- When uncertain about Islamic content accuracy, err on the side of caution and flag for human review.
- Focus on educational quality and age-appropriateness."""

MODERATION_TEMPLATE = """Analyze the following {{CONTENT_TYPE}} content for moderation. {{AGE_TIER_NOTE}}

Content to analyze:
---
{{CONTENT}}
---

Evaluate the content for these criteria:
1. ACCURACY: Are Quranic references, Hadith citations, and Islamic rulings accurately represented?
2. AGE_APPROPRIATENESS: Is the content suitable for the target age tier?
3. CULTURAL_SENSITIVITY: Does the content respect Islamic values and the American Muslim community?
4. QUALITY: Is the content well-structured, clear, and educational?
5. SAFETY: Does the content contain anything harmful, misleading, or inappropriate?

Respond in valid JSON format only:
{
  "score": <float 0.0-1.0, where 1.0 is completely safe>,
  "flags": [
    {
      "type": "<ACCURACY|AGE_APPROPRIATENESS|CULTURAL_SENSITIVITY|QUALITY|SAFETY>",
      "severity": "<low|medium|high|critical>",
      "description": "<brief explanation>"
    }
  ],
  "reasoning": "<2-3 sentence summary of the analysis>",
  "recommendation": "<approve|needs_review|reject>"
}"""

SUMMARY_TEMPLATE = """Summarize the following Islamic educational content in 2-3 clear, concise sentences. Preserve key Islamic terminology and concepts. The summary should help students quickly understand what the lesson covers.

Content:
---
{{CONTENT}}
---

Respond with the summary text only, no formatting or labels."""

TAGGING_TEMPLATE = """Analyze the following Islamic educational content and suggest appropriate tags and categorization.

Title: {{TITLE}}
Content:
---
{{CONTENT}}
---

Respond in valid JSON format only:
{
  "subject": "<quran|arabic|fiqh|hadith|seerah|aqeedah|akhlaq|tajweed>",
  "difficulty": "<beginner|intermediate|advanced>",
  "ageTier": "<children|youth|adults|seniors>",
  "keywords": ["<keyword1>", "<keyword2>", "<keyword3>", "<keyword4>", "<keyword5>"]
}"""

QUIZ_TEMPLATE = """Generate {{QUESTION_COUNT}} multiple-choice quiz questions based on the following Islamic educational content. Difficulty level: {{DIFFICULTY}}.

Content:
---
{{CONTENT}}
---

Requirements:
- Questions should test understanding, not just memorization
- Each question must have exactly 4 options
- Provide a clear explanation for each correct answer
- Include relevant Islamic references where appropriate
- Questions should be appropriate for the content's difficulty level

Respond in valid JSON format only:
{
  "questions": [
    {
      "question": "<question text>",
      "type": "multiple_choice",
      "options": ["<option A>", "<option B>", "<option C>", "<option D>"],
      "correctAnswer": "<exact text of correct option>",
      "explanation": "<why this is correct, with Islamic reference if applicable>",
      "points": 10
    }
  ]
}"""


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with request values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def render_moderation_prompt(content: str, content_type: str, age_tier: str | None = None) -> str:
  age_note = f'This content is targeted at the "{age_tier}" age tier.' if age_tier else ""
  # Content goes last so placeholder-like text inside it is never substituted.
  rendered = _replace_placeholders(MODERATION_TEMPLATE, {"CONTENT_TYPE": content_type, "AGE_TIER_NOTE": age_note})
  return _replace_placeholders(rendered, {"CONTENT": content})


def render_summary_prompt(content: str) -> str:
  return _replace_placeholders(SUMMARY_TEMPLATE, {"CONTENT": content})


def render_tagging_prompt(content: str, title: str) -> str:
  rendered = _replace_placeholders(TAGGING_TEMPLATE, {"TITLE": title})
  return _replace_placeholders(rendered, {"CONTENT": content})


def render_quiz_prompt(content: str, question_count: int, difficulty: str) -> str:
  rendered = _replace_placeholders(QUIZ_TEMPLATE, {"QUESTION_COUNT": str(question_count), "DIFFICULTY": difficulty})
  return _replace_placeholders(rendered, {"CONTENT": content})
