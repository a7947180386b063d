"""Value types observed and produced while exploring a page."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional

ActionKind = Literal["navigate", "interact"]
ErrorKind = Literal["pageerror", "console_error", "network_error", "action_error"]

# Input subtypes that are clicked rather than typed into. Numeric and
# date-like inputs reject free text, so they are clicked as well.
NON_TEXT_INPUT_TYPES = frozenset(
    {
        "button",
        "checkbox",
        "color",
        "date",
        "datetime-local",
        "file",
        "hidden",
        "image",
        "month",
        "number",
        "radio",
        "range",
        "reset",
        "submit",
        "time",
        "week",
    }
)


class TagCategory(str, Enum):
    """Kind of interactive control an element represents."""

    link = "link"
    button = "button"
    input = "input"
    textarea = "textarea"
    select = "select"
    role_button = "role-button"

    @classmethod
    def from_tag_name(cls, tag_name: str) -> "TagCategory":
        """Map a DOM tag name onto a category.

        Anything outside the natively interactive tags can only have been
        collected through ``[role="button"]``.
        """
        name = (tag_name or "").strip().lower()
        if name == "a":
            return cls.link
        if name in ("button", "input", "textarea", "select"):
            return cls(name)
        return cls.role_button


@dataclass(frozen=True, slots=True)
class Element:
    """Snapshot of one visible interactive control.

    Elements are plain values captured at observation time. They are never
    live handles and must not be reused after the page navigates away.
    """

    id: str
    tag: TagCategory
    selector: str
    text: str = ""
    href: Optional[str] = None
    input_type: Optional[str] = None
    visible: bool = True

    @classmethod
    def from_dom(cls, payload: Mapping[str, Any]) -> "Element":
        """Build an element from the DOM extraction payload."""
        input_type = payload.get("type") or None
        return cls(
            id=str(payload.get("id") or ""),
            tag=TagCategory.from_tag_name(str(payload.get("tagName") or "")),
            selector=str(payload.get("selector") or ""),
            text=str(payload.get("text") or "").strip(),
            href=payload.get("href") or None,
            input_type=str(input_type).lower() if input_type else None,
            visible=bool(payload.get("isVisible", True)),
        )

    @property
    def is_link(self) -> bool:
        return self.tag is TagCategory.link

    @property
    def is_text_entry(self) -> bool:
        if self.tag is TagCategory.textarea:
            return True
        return self.tag is TagCategory.input and (
            self.input_type not in NON_TEXT_INPUT_TYPES
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tag": self.tag.value,
            "selector": self.selector,
            "text": self.text,
            "href": self.href,
            "input_type": self.input_type,
            "visible": self.visible,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Element":
        return cls(
            id=data["id"],
            tag=TagCategory(data["tag"]),
            selector=data["selector"],
            text=data.get("text", ""),
            href=data.get("href"),
            input_type=data.get("input_type"),
            visible=data.get("visible", True),
        )


@dataclass(frozen=True, slots=True)
class ScoredElement:
    """An element paired with its curiosity score."""

    element: Element
    score: int

    @property
    def selector(self) -> str:
        return self.element.selector


@dataclass(frozen=True, slots=True)
class Action:
    """An intent to change page state, fixed once chosen for a step."""

    kind: ActionKind
    element: Element
    url: Optional[str] = None  # navigate only
    value: Optional[str] = None  # fill value for text-entry interactions

    @classmethod
    def navigate(cls, element: Element, url: str) -> "Action":
        return cls(kind="navigate", element=element, url=url)

    @classmethod
    def interact(cls, element: Element, value: Optional[str] = None) -> "Action":
        return cls(kind="interact", element=element, value=value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "element": self.element.to_dict(),
            "url": self.url,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Action":
        return cls(
            kind=data["kind"],
            element=Element.from_dict(data["element"]),
            url=data.get("url"),
            value=data.get("value"),
        )


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One anomaly observed in the application under test."""

    kind: ErrorKind
    url: str
    message: Optional[str] = None
    status: Optional[int] = None
    page_url: Optional[str] = None  # page showing a failed network response

    def describe(self) -> str:
        if self.message:
            return self.message
        if self.status is not None:
            return f"HTTP {self.status}"
        return "Unknown error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "url": self.url,
            "message": self.message,
            "status": self.status,
            "page_url": self.page_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorRecord":
        return cls(
            kind=data["kind"],
            url=data["url"],
            message=data.get("message"),
            status=data.get("status"),
            page_url=data.get("page_url"),
        )
