"""
Keyword Intent Classifier.

Scores a message against fixed Indonesian keyword tables. The confidence is
a relative score (hits over table size), not a calibrated probability; it is
only used to decide whether the order flow should engage.
"""

import logging

from ...schemas.ordering import IntentResult
from .constants import (
    DEFAULT_KEYWORD_WEIGHT,
    INTENT_KEYWORDS,
    MENU_KEYWORD_WEIGHT,
    MENU_PHRASE_CONFIDENCE,
    MENU_PHRASES,
    ORDERING_CONFIDENCE_THRESHOLD,
    ORDERING_INTENTS,
)

logger = logging.getLogger(__name__)


def classify(message: str) -> IntentResult:
    """
    Classify a customer message.

    Exact menu phrases win outright with confidence 0.9. Otherwise each
    intent scores one point per keyword found (1.5 for menu keywords) and
    the strictly highest score wins, so ties go to the earlier intent.
    ``is_ordering`` requires a menu/order intent with confidence above 0.2.

    Examples:
        "mau pesan menu dong"  -> menu, 0.9, ordering
        "menu"                 -> menu, ~0.05, not ordering
        "halo"                 -> general, 0.0, not ordering
    """
    lower = message.lower().strip()

    for phrase in MENU_PHRASES:
        if phrase in lower:
            return IntentResult(is_ordering=True, intent="menu", confidence=MENU_PHRASE_CONFIDENCE)

    best_intent = "general"
    max_score = 0.0
    for intent, keywords in INTENT_KEYWORDS.items():
        weight = MENU_KEYWORD_WEIGHT if intent == "menu" else DEFAULT_KEYWORD_WEIGHT
        score = sum(weight for keyword in keywords if keyword in lower)
        if score > max_score:
            max_score = score
            best_intent = intent

    table_size = len(INTENT_KEYWORDS.get(best_intent, ()))
    confidence = max_score / max(1, table_size)
    is_ordering = best_intent in ORDERING_INTENTS and confidence > ORDERING_CONFIDENCE_THRESHOLD

    logger.debug(
        "Intent: %s (score=%.1f, confidence=%.3f, ordering=%s)",
        best_intent, max_score, confidence, is_ordering,
    )
    return IntentResult(is_ordering=is_ordering, intent=best_intent, confidence=confidence)
