"""Crawl state and the per-field merge applied at every step boundary."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from .models import Action, Element, ErrorRecord, ScoredElement
from .urls import try_normalize

CrawlMap = Dict[str, List[Action]]
StateUpdate = Mapping[str, Any]


@dataclass
class CrawlState:
    """Everything the exploration loop knows about a run.

    This is the unit of checkpointing. Only the loop changes it, and only
    through :func:`apply_update`.
    """

    current_url: str
    visited_urls: Set[str] = field(default_factory=set)
    crawl_map: CrawlMap = field(default_factory=dict)
    errors: List[ErrorRecord] = field(default_factory=list)
    element_queue: List[ScoredElement] = field(default_factory=list)
    next_action: Optional[Action] = None

    @classmethod
    def initial(cls, start_url: str) -> "CrawlState":
        return cls(current_url=start_url, visited_urls={page_key(start_url)})

    @property
    def page_key(self) -> str:
        """Crawl-map key of the page the browser is currently on."""
        return page_key(self.current_url)

    def actions_here(self) -> List[Action]:
        return self.crawl_map.get(self.page_key, [])

    def snapshot(self) -> "CrawlState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form of the state."""
        return {
            "current_url": self.current_url,
            "visited_urls": sorted(self.visited_urls),
            "crawl_map": {
                url: [action.to_dict() for action in actions]
                for url, actions in self.crawl_map.items()
            },
            "errors": [error.to_dict() for error in self.errors],
            "element_queue": [
                {"element": item.element.to_dict(), "score": item.score}
                for item in self.element_queue
            ],
            "next_action": self.next_action.to_dict() if self.next_action else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CrawlState":
        next_action = data.get("next_action")
        return cls(
            current_url=data["current_url"],
            visited_urls=set(data.get("visited_urls", [])),
            crawl_map={
                url: [Action.from_dict(item) for item in actions]
                for url, actions in (data.get("crawl_map") or {}).items()
            },
            errors=[ErrorRecord.from_dict(item) for item in data.get("errors", [])],
            element_queue=[
                ScoredElement(
                    element=Element.from_dict(item["element"]), score=item["score"]
                )
                for item in data.get("element_queue", [])
            ],
            next_action=Action.from_dict(next_action) if next_action else None,
        )


def page_key(url: str) -> str:
    """Normalized form of ``url``, or the raw URL when it cannot be parsed."""
    return try_normalize(url) or url


def _replace(current: Any, incoming: Any) -> Any:
    return incoming


def _union(current: Set[str], incoming: Set[str]) -> Set[str]:
    return set(current) | set(incoming)


def _append(current: List[Any], incoming: List[Any]) -> List[Any]:
    return list(current) + list(incoming)


def _merge_crawl_map(current: CrawlMap, incoming: CrawlMap) -> CrawlMap:
    merged = {url: list(actions) for url, actions in current.items()}
    for url, actions in incoming.items():
        merged[url] = merged.get(url, []) + list(actions)
    return merged


MERGERS: Dict[str, Callable[[Any, Any], Any]] = {
    "current_url": _replace,
    "visited_urls": _union,
    "crawl_map": _merge_crawl_map,
    "errors": _append,
    "element_queue": _replace,
    "next_action": _replace,
}


def apply_update(state: CrawlState, update: StateUpdate) -> CrawlState:
    """Commit a partial step update and return the resulting state.

    Each field present in ``update`` is combined with the current value by
    its merge function. Fields absent from ``update`` are carried over
    unchanged. Neither argument is modified.

    Raises:
        KeyError: If ``update`` names a field CrawlState does not have.
    """
    unknown = set(update) - set(MERGERS)
    if unknown:
        raise KeyError(f"Unknown crawl state field(s): {', '.join(sorted(unknown))}")

    values = {f.name: getattr(state, f.name) for f in fields(state)}
    for name, incoming in update.items():
        values[name] = MERGERS[name](values[name], incoming)
    return CrawlState(**values)
