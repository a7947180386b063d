"""The curiosity engine: heuristic ranking of interactive elements.

Elements that are likely to change application state (authentication,
payments, destructive or administrative actions, forms) are ranked above
passive content such as plain navigation links.
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, List, Sequence

from .models import Element, ScoredElement, TagCategory

BASE_SCORE = 10
HIGH_RISK_BONUS = 40
MEDIUM_RISK_BONUS = 20
FORM_CONTROL_BONUS = 15
BUTTON_BONUS = 15
ACTED_PENALTY = 50

HIGH_RISK_KEYWORDS: Sequence[str] = (
    "login",
    "signin",
    "sign-in",
    "password",
    "checkout",
    "cart",
    "buy",
    "pay",
    "billing",
    "credit",
    "settings",
    "config",
    "admin",
    "dashboard",
    "profile",
    "submit",
    "save",
    "delete",
    "remove",
    "destroy",
)

MEDIUM_RISK_KEYWORDS: Sequence[str] = (
    "search",
    "query",
    "filter",
    "sort",
    "add",
    "create",
    "new",
    "edit",
    "update",
)

_FORM_CONTROLS = frozenset({TagCategory.input, TagCategory.textarea, TagCategory.select})


def _haystack(element: Element) -> str:
    parts = (element.text, element.selector, element.href or "", element.id)
    return " ".join(part for part in parts if part).lower()


def score_element(element: Element) -> int:
    """Score an element between 10 and 80.

    Keyword groups are mutually exclusive: a high-risk match hides any
    medium-risk match. The two control-type bonuses stack.
    """
    score = BASE_SCORE
    text = _haystack(element)

    if any(keyword in text for keyword in HIGH_RISK_KEYWORDS):
        score += HIGH_RISK_BONUS
    elif any(keyword in text for keyword in MEDIUM_RISK_KEYWORDS):
        score += MEDIUM_RISK_BONUS

    if element.tag in _FORM_CONTROLS:
        score += FORM_CONTROL_BONUS

    if element.tag is TagCategory.button or element.input_type == "submit":
        score += BUTTON_BONUS

    return score


def prioritize(
    elements: Iterable[Element],
    acted_selectors: AbstractSet[str] = frozenset(),
) -> List[ScoredElement]:
    """Rank elements by descending score.

    Elements whose selector was already acted on lose 50 points but stay in
    the ranking as a last resort. Ties keep observation order.
    """
    scored = []
    for element in elements:
        score = score_element(element)
        if element.selector in acted_selectors:
            score -= ACTED_PENALTY
        scored.append(ScoredElement(element=element, score=score))
    return sorted(scored, key=lambda item: item.score, reverse=True)
