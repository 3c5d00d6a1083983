"""
Prompt templates for PRD generation, critique and question answering.

Templates use ``{{variable}}`` placeholders. ``compile_prompt`` fills the
ones it has values for and leaves the rest untouched.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

TONE_INSTRUCTIONS = {
    "technical": "\n- Include technical specifications and implementation details",
    "executive": "\n- Focus on business impact and strategic objectives",
    "casual": "\n- Use approachable, conversational language while maintaining clarity",
    "professional": "",
}

INTERACTIVE_SYSTEM_TEMPLATE = """\
You are an experienced Product Manager who writes detailed Product Requirements Documents (PRDs).
The user has an informal or vague product idea. Ask clarifying questions in batches of 3-5 to
gather what a complete PRD needs, starting broad and adapting to earlier answers. Aim to finish
within three rounds of questions and never assume important details.

Once you have enough information, write a PRD covering:
- Overview: summary, purpose and value proposition
- Problem: the user or business problem, its impact, and why now
- Job Stories: "When I [situation], I want to [motivation], so I can [expected outcome]."
- Evidence: qualitative and quantitative support for the need
- Success Metrics: how success will be measured
- Target Audience: who the product is for
- Scope: what is included and explicitly excluded from the first release
- Non-Functional Requirements: performance, security, scalability
- Timeline: high-level schedule (optional)
- Open Questions/Assumptions

Wrap the finished PRD in <prd></prd> tags and use markdown headings, bullet lists and tables.

- Provide {{length}} level of detail{{toneInstructions}}
"""

CRITIQUE_SYSTEM_TEMPLATE = """\
You are an expert PRD reviewer. Evaluate the document and score each area from 0 to 10:
1. Structure & Organization
2. Completeness
3. Clarity & Communication
4. Requirements Quality
5. User Focus
6. Technical Feasibility
7. Success Metrics

Give an overall score, list the main strengths, and list the most important gaps.
{{suggestionInstructions}}
"""

CRITIQUE_USER_TEMPLATE = """\
Please review the following PRD:

{{existingPrdContent}}
"""

QUESTION_SYSTEM_TEMPLATE = """\
You are an expert Product Manager assistant answering questions about a Product Requirements
Document. Base every answer on the PRD content, say clearly when something is not stated in it,
point to related sections, and ask a follow-up question when the request is ambiguous.
{{context}}
"""

QUESTION_USER_TEMPLATE = """\
Here is the PRD content:

{{prdContent}}

Question: {{question}}

Please answer the question based on the PRD content provided above.
"""


def compile_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders.

    Args:
        template: Template text.
        variables: Values by placeholder name; None renders as "".

    Returns:
        The compiled prompt.
    """

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template)


def interactive_system_prompt(tone: str = "professional", length: str = "standard") -> str:
    return compile_prompt(
        INTERACTIVE_SYSTEM_TEMPLATE,
        {"length": length, "toneInstructions": TONE_INSTRUCTIONS.get(tone, "")},
    )


def critique_system_prompt(include_suggestions: bool = True) -> str:
    if include_suggestions:
        instructions = (
            "Include specific examples and suggestions for improvement in each area."
        )
    else:
        instructions = "Focus on identifying issues without providing detailed suggestions."
    return compile_prompt(
        CRITIQUE_SYSTEM_TEMPLATE, {"suggestionInstructions": instructions}
    )


def critique_user_prompt(prd_content: str) -> str:
    return compile_prompt(CRITIQUE_USER_TEMPLATE, {"existingPrdContent": prd_content or ""})


def question_system_prompt(context: str = "") -> str:
    extra = f"Additional context: {context}" if context else ""
    return compile_prompt(QUESTION_SYSTEM_TEMPLATE, {"context": extra})


def question_user_prompt(prd_content: str, question: str) -> str:
    return compile_prompt(
        QUESTION_USER_TEMPLATE, {"prdContent": prd_content, "question": question}
    )


TEMPLATE_OUTLINE_TEMPLATE = """\

Structure the PRD using the "{{title}}" template, with these sections in order:
{{sections}}
"""


def template_outline(template: Any) -> str:
    """
    Section instructions for a stored template.

    ``template`` needs ``title`` and ordered ``sections`` with ``name``,
    ``description`` and ``required``.
    """
    lines = []
    for section in template.sections:
        marker = "" if section.required else " (optional)"
        detail = f": {section.description}" if section.description else ""
        lines.append(f"- {section.name}{marker}{detail}")
    return compile_prompt(
        TEMPLATE_OUTLINE_TEMPLATE, {"title": template.title, "sections": "\n".join(lines)}
    )
