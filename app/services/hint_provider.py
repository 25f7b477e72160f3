# app/services/hint_provider.py
import logging
from typing import Optional

import google.generativeai as genai

from app.core.config import settings

logger = logging.getLogger("app.services.hint_provider")  # Logger for this module

MAX_HINT_CHARS = 200


def _build_prompt(target_content: str, context_content: Optional[str]) -> str:
    context = context_content or "Start of game"
    return f"""
Give a subtle hint for the word "{target_content}" which is associated with "{context}".
The hint should be short, cryptic but helpful.
CRITICAL INSTRUCTION: Do NOT use the word "{target_content}" or any of its variations in the hint itself.
Example format: "Think about..." or "Related to..."
"""


def _reveals_answer(hint: str, target_content: str) -> bool:
    lowered = hint.lower()
    # Very short words ("a", "of") would match almost any clue
    return any(len(word) >= 3 and word in lowered for word in target_content.lower().split())


def generate_hint(target_content: str, context_content: Optional[str] = None) -> Optional[str]:
    """
    Asks Gemini for a short non-revealing clue. Returns None on any provider failure;
    callers still advance the hint tier without a clue.
    """
    if not settings.GEMINI_API_KEY or settings.GEMINI_API_KEY == "YOUR_GEMINI_API_KEY_HERE":
        logger.warning("GEMINI_API_KEY is not configured. Returning mock hint.")
        return f"[MOCK HINT] It starts with '{target_content[:1]}'."

    try:
        genai.configure(api_key=settings.GEMINI_API_KEY)
        model = genai.GenerativeModel(settings.AI_HINT_MODEL)
        response = model.generate_content(_build_prompt(target_content, context_content))
        hint = (response.text or "").strip()
    except Exception as e:
        logger.exception(f"Error calling Gemini for hint: {e}")
        return None

    if not hint:
        logger.warning("Gemini returned an empty hint.")
        return None
    if _reveals_answer(hint, target_content):
        logger.warning("Gemini hint contained the answer. Discarding it.")
        return None
    return hint[:MAX_HINT_CHARS]
