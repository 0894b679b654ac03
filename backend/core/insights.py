"""
insights.py — School insight cards with "load more" reveal.

The upstream school-performance payload carries qualitative lists
(areas for improvement, concerning classes, at-risk students, strengths,
top and outstanding classes). Each list is shown as a card that reveals
its items ten at a time. Everything is already in memory; nothing here
talks to the server.

Item formats:
- plain strings, shown as-is
- records {name | class_name, average | avg_score, pass_rate}
"""

from typing import Any, Dict, List, Optional

DEFAULT_MAX_INITIAL_ITEMS = 10
LOAD_MORE_STEP = 10

# (payload key, card type)
INSIGHT_CARDS = [
    ("areas_for_improvement", "improvement"),
    ("concerning_classes", "improvement"),
    ("at_risk_students", "improvement"),
    ("strengths", "strength"),
    ("top_classes", "strength"),
    ("outstanding_classes", "strength"),
]


class InsightList:
    """Reveal-by-page state over a fully loaded list of insight items."""

    def __init__(
        self,
        items: Optional[List[Any]],
        max_initial_items: int = DEFAULT_MAX_INITIAL_ITEMS,
        step: int = LOAD_MORE_STEP,
    ):
        self.items = list(items or [])
        self.step = step
        self.visible_count = min(max(max_initial_items, 0), len(self.items))

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def has_more(self) -> bool:
        return self.visible_count < self.total

    @property
    def visible(self) -> List[Any]:
        return self.items[: self.visible_count]

    def load_more(self) -> int:
        """Reveal the next page; returns the new visible count."""
        self.visible_count = min(self.visible_count + self.step, self.total)
        return self.visible_count


def reveal_state(total: int, max_initial_items: int = DEFAULT_MAX_INITIAL_ITEMS, clicks: int = 0) -> int:
    """Visible item count after `clicks` presses of "load more"."""
    insight_list = InsightList([None] * max(total, 0), max_initial_items=max_initial_items)
    for _ in range(max(clicks, 0)):
        if not insight_list.has_more:
            break
        insight_list.load_more()
    return insight_list.visible_count


def _number(val) -> Optional[float]:
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def render_insight_item(item: Any) -> str:
    """One line of text for an insight item."""
    if isinstance(item, str):
        return item
    if not isinstance(item, dict):
        return str(item)

    name = item.get("name") or item.get("class_name") or ""
    average = _number(item.get("average")) or _number(item.get("avg_score"))
    pass_rate = _number(item.get("pass_rate"))

    avg_text = f"(avg: {average:.1f})" if average else ""
    pass_text = f", passRate: {pass_rate:.1f}%" if pass_rate else ""
    return f"{name} {avg_text}{pass_text}"


def build_insight_cards(
    data: Any,
    max_initial_items: int = DEFAULT_MAX_INITIAL_ITEMS,
    reveals: Optional[Dict[str, int]] = None,
) -> List[Dict[str, Any]]:
    """
    Insight cards for the school overview. Empty lists produce no card.
    `reveals` maps a card key to the number of "load more" clicks so far.
    """
    if not isinstance(data, dict):
        return []
    reveals = reveals or {}

    cards = []
    for key, card_type in INSIGHT_CARDS:
        items = data.get(key)
        if not isinstance(items, list) or not items:
            continue
        visible_count = reveal_state(len(items), max_initial_items, reveals.get(key, 0))
        cards.append({
            "key": key,
            "type": card_type,
            "total": len(items),
            "visible_count": visible_count,
            "has_more": visible_count < len(items),
            "items": [render_insight_item(i) for i in items[:visible_count]],
        })
    return cards
