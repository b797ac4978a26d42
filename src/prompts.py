"""System-prompt assembly for the care agents.

The base prompt of every agent lives in the database (``ai_agent_configurations``);
this module only appends the per-request material in a fixed order:

  base prompt → knowledge → page hint → domain context → language/tone
  → (optional) nurse consultation
"""

from __future__ import annotations

LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "nl": "Dutch",
}

STRICT_LANGUAGE_TEMPLATE = (
    "\n\nCRITICAL INSTRUCTION: You MUST respond in {language}. The user's interface "
    "is in {language}, so ALL your responses must be in {language}. Do not use any "
    "other language under any circumstances. When discussing pricing, use appropriate "
    "currency symbols (€ for Spanish/Dutch, £ for English)."
)

LANGUAGE_TEMPLATE = "\n\nRespond in {language}. {tone}"

HANDOFF_SUFFIX_TEMPLATE = (
    "\n\nIMPORTANT: This is a handoff request from another AI agent. "
    "Respond helpfully to the query. Respond in {language}."
)

MEMBER_CONSULTATION_TEMPLATE = (
    "\n\n[NURSE CONSULTATION]\n"
    "{agent} (Nurse AI) has provided this clinical assessment:\n"
    '"{message}"\n\n'
    "Now summarize this for the member in simple, caring terms. Start with something "
    "like \"I checked with our nursing assistant {agent}, and here's what she suggests...\""
)

FAMILY_CONSULTATION_TEMPLATE = (
    "\n\n[NURSE CONSULTATION]\n"
    "{agent} (Nurse AI) advises:\n"
    '"{message}"\n\n'
    "Explain this to the family member in reassuring, simple terms."
)


def language_name(code: str | None) -> str:
    """Map a UI language code to its name; unknown codes fall back to English."""
    return LANGUAGES.get((code or "en").lower(), "English")


def build_system_prompt(
    base_prompt: str,
    *,
    knowledge: str = "",
    page_hint: str = "",
    context: str = "",
    language: str = "en",
    tone: str = "",
    strict_language: bool = False,
    handoff_request: bool = False,
) -> str:
    """Return the full system prompt for one request (consultation not included)."""
    name = language_name(language)
    if handoff_request:
        suffix = HANDOFF_SUFFIX_TEMPLATE.format(language=name)
    elif strict_language:
        suffix = STRICT_LANGUAGE_TEMPLATE.format(language=name)
    else:
        suffix = LANGUAGE_TEMPLATE.format(language=name, tone=tone).rstrip()
    return f"{base_prompt}{knowledge}{page_hint}{context}{suffix}"


def consultation_block(template: str, *, agent: str, message: str) -> str:
    """Quote a consulted agent's reply and tell the primary agent how to restate it."""
    return template.format(agent=agent, message=message)
