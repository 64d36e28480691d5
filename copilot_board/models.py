"""Conversation, message, summary and meta-point records."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONVERSATION_TITLE = "Neuer Chat"


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class Category(StrEnum):
    """The four fixed meta-analysis categories.

    The enum value is the key used in analysis documents; ``point_type`` is
    the shorter value stored in ``meta_points.type``.
    """

    CORE_IDEA = "kernideen"
    INSIGHT = "erkenntnisse"
    OPEN_QUESTION = "offene_fragen"
    TODO = "todos"

    @property
    def point_type(self) -> str:
        return _POINT_TYPES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def placeholder(self) -> str:
        return _PLACEHOLDERS[self]

    @classmethod
    def from_point_type(cls, value: str) -> Category:
        for category, point_type in _POINT_TYPES.items():
            if point_type == value:
                return category
        raise ValueError(f"Unknown meta point type: {value!r}")

    @classmethod
    def parse(cls, value: str) -> Category:
        """Accept either an analysis key (``todos``) or a point type (``todo``)."""
        try:
            return cls(value)
        except ValueError:
            return cls.from_point_type(value)


_POINT_TYPES: dict[Category, str] = {
    Category.CORE_IDEA: "kernidee",
    Category.INSIGHT: "erkenntnis",
    Category.OPEN_QUESTION: "frage",
    Category.TODO: "todo",
}

_LABELS: dict[Category, str] = {
    Category.CORE_IDEA: "Kernidee",
    Category.INSIGHT: "Erkenntnis",
    Category.OPEN_QUESTION: "Offene Frage",
    Category.TODO: "To-do",
}

_PLACEHOLDERS: dict[Category, str] = {
    Category.CORE_IDEA: "Analyse wird verarbeitet...",
    Category.INSIGHT: "Erkenntnisse werden extrahiert...",
    Category.OPEN_QUESTION: "Fragen werden identifiziert...",
    Category.TODO: "Aufgaben werden erfasst...",
}

ALL_CATEGORIES: tuple[Category, ...] = tuple(Category)


# -- Row-backed records --------------------------------------------------------


@dataclass
class Conversation:
    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()

    def to_row(self) -> tuple:
        return (self.id, self.title, self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> Conversation:
        return cls(id=row[0], title=row[1], created_at=row[2])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Message:
    """One stored exchange: the user's text and the assistant's reply."""

    id: str
    conversation_id: str
    user_message: str
    assistant_message: str
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_row(self) -> tuple:
        return (
            self.id,
            self.conversation_id,
            self.user_message,
            self.assistant_message,
            self.timestamp,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Message:
        return cls(
            id=row[0],
            conversation_id=row[1],
            user_message=row[2],
            assistant_message=row[3],
            timestamp=row[4],
        )

    def to_api_messages(self) -> list[dict[str, str]]:
        """Expand into a user turn followed by an assistant turn."""
        return [
            {"role": "user", "content": self.user_message},
            {"role": "assistant", "content": self.assistant_message},
        ]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Summary:
    """Rolling summary of one conversation."""

    conversation_id: str
    summary_text: str | None = None
    message_count: int | None = None
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MetaPoint:
    """One extracted observation in exactly one category."""

    id: str
    conversation_id: str
    category: Category
    text: str
    hidden: bool = False
    created_at: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.category, Category):
            self.category = Category.parse(self.category)
        if not self.created_at:
            self.created_at = utc_now()

    def to_row(self) -> tuple:
        return (
            self.id,
            self.conversation_id,
            self.category.point_type,
            self.text,
            int(self.hidden),
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> MetaPoint:
        return cls(
            id=row[0],
            conversation_id=row[1],
            category=Category.from_point_type(row[2]),
            text=row[3],
            hidden=bool(row[4]),
            created_at=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "type": self.category.point_type,
            "category": self.category.value,
            "text": self.text,
            "hidden": self.hidden,
            "created_at": self.created_at,
        }


# -- Analysis documents --------------------------------------------------------


class Analysis(BaseModel):
    """The four category lists plus the number of messages they came from."""

    kernideen: list[str] = Field(default_factory=list)
    erkenntnisse: list[str] = Field(default_factory=list)
    offene_fragen: list[str] = Field(default_factory=list)
    todos: list[str] = Field(default_factory=list)
    message_count: int = 0

    def get(self, category: Category) -> list[str]:
        return getattr(self, category.value)

    def categories(self) -> dict[str, list[str]]:
        return {category.value: list(self.get(category)) for category in ALL_CATEGORIES}

    def merged(self, updates: dict[Category, list[str]], message_count: int) -> Analysis:
        """Return a copy with *updates* replacing their categories."""
        data = self.categories()
        for category, items in updates.items():
            data[category.value] = list(items)
        return Analysis(**data, message_count=message_count)

    @classmethod
    def from_points(cls, points: list[MetaPoint], message_count: int = 0) -> Analysis:
        data: dict[str, list[str]] = {category.value: [] for category in ALL_CATEGORIES}
        for point in points:
            data[point.category.value].append(point.text)
        return cls(**data, message_count=message_count)

    @classmethod
    def from_json_text(cls, text: str | None) -> Analysis | None:
        """Load a stored ``meta_analysis`` column value."""
        if not text:
            return None
        return cls.model_validate_json(text)


class AnalysisExport(BaseModel):
    """Downloadable analysis document."""

    model_config = ConfigDict(populate_by_name=True)

    analysis: dict[str, list[str]]
    message_count: int = Field(alias="messageCount")
    exported_at: str = Field(default_factory=utc_now, alias="exportedAt")

    @classmethod
    def from_analysis(cls, analysis: Analysis) -> AnalysisExport:
        return cls(analysis=analysis.categories(), message_count=analysis.message_count)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> AnalysisExport:
        return cls.model_validate(json.loads(text))

    def to_analysis(self) -> Analysis:
        data = {
            category.value: list(self.analysis.get(category.value, []))
            for category in ALL_CATEGORIES
        }
        return Analysis(**data, message_count=self.message_count)


@dataclass
class AnalysisResult:
    """What a refresh returns: the merged analysis and the stored points it wrote."""

    analysis: Analysis
    points: dict[Category, list[MetaPoint]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "analysis": self.analysis.categories(),
            "message_count": self.analysis.message_count,
            "points": {
                category.value: [p.to_dict() for p in points]
                for category, points in self.points.items()
            },
        }
