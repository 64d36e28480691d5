"""Meta-analysis of a conversation.

Distills the recent history into up to N short points in each of four
categories (core ideas, insights, open questions, to-dos).  Categories can
be refreshed selectively; the others keep their previously accepted points.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import weakref
from typing import TYPE_CHECKING, Any

from copilot_board.errors import ValidationError
from copilot_board.models import ALL_CATEGORIES, Analysis, AnalysisResult, Category
from copilot_board.summarizer import render_transcript

if TYPE_CHECKING:
    from collections.abc import Iterable

    from copilot_board.config import Settings
    from copilot_board.llm import CompletionClient
    from copilot_board.store import ConversationStore

logger = logging.getLogger(__name__)

_DESCRIPTIONS: dict[Category, str] = {
    Category.CORE_IDEA: "Kernideen: Die wichtigsten Konzepte oder Themen",
    Category.INSIGHT: "Erkenntnisse: Wichtige Erkenntnisse oder Schlussfolgerungen",
    Category.OPEN_QUESTION: "Offene Fragen: Fragen, die noch nicht beantwortet wurden",
    Category.TODO: "To-dos: Konkrete Aufgaben oder Aktionen, die identifiziert wurden",
}


# -- Request handling ----------------------------------------------------------


def resolve_categories(names: Iterable[str] | None) -> list[Category]:
    """Turn requested category names into categories (all four when empty)."""
    if not names:
        return list(ALL_CATEGORIES)
    resolved: list[Category] = []
    for name in names:
        if not isinstance(name, str):
            raise ValidationError(f"Invalid category: {name!r}")
        try:
            category = Category.parse(name)
        except ValueError as exc:
            raise ValidationError(f"Unknown category: {name}") from exc
        if category not in resolved:
            resolved.append(category)
    return resolved


# -- Prompt building -----------------------------------------------------------


def build_analysis_prompt(categories: list[Category], max_points: int) -> str:
    """System instruction asking for the requested categories only."""
    lines = [
        f"{i}. {_DESCRIPTIONS[category]}" for i, category in enumerate(categories, start=1)
    ]
    example = ",\n".join(
        f'  "{category.value}": ["{category.label} 1", "{category.label} 2", ...]'
        for category in categories
    )
    return (
        "Du bist ein Meta-Analyst für Gespräche. Analysiere den folgenden Chatverlauf "
        "und extrahiere:\n\n"
        + "\n".join(lines)
        + "\n\nAntworte ausschließlich mit einem JSON-Objekt im folgenden Format:\n"
        + "{\n"
        + example
        + "\n}\n\n"
        + f"Sei präzise und fokussiere dich auf die wichtigsten Punkte. "
        f"Maximal {max_points} kurze Punkte pro Kategorie."
    )


# -- Parsing -------------------------------------------------------------------


_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def _decode_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _load_json_object(text: str) -> dict[str, Any] | None:
    data = _decode_object(text)
    if data is not None or "```" not in text:
        return data

    # Fenced block first, prose around it may contain stray braces
    match = _FENCE_RE.search(text)
    if match:
        data = _decode_object(match.group(1))
        if data is not None:
            return data

    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    return _decode_object(text[start:end])


def parse_analysis_response(
    text: str,
    categories: list[Category],
    max_points: int,
) -> dict[Category, list[str]] | None:
    """Parse the model's JSON output.

    Returns the requested categories that came back as lists (trimmed to
    *max_points* non-empty strings), or None when the output is not a JSON
    object at all.
    """
    data = _load_json_object(text)
    if data is None:
        logger.warning("Failed to parse analysis JSON")
        return None

    parsed: dict[Category, list[str]] = {}
    for category in categories:
        items = data.get(category.value)
        if not isinstance(items, list):
            continue
        cleaned = [str(item).strip() for item in items if isinstance(item, str | int | float)]
        parsed[category] = [item for item in cleaned if item][:max_points]
    return parsed


def placeholders(categories: list[Category]) -> dict[Category, list[str]]:
    return {category: [category.placeholder] for category in categories}


# -- Analyzer ------------------------------------------------------------------


class MetaAnalyzer:
    """Extracts and merges per-category points for a conversation.

    Refreshes of one conversation are serialized within this process.
    """

    def __init__(
        self,
        settings: Settings,
        store: ConversationStore,
        completion: CompletionClient,
    ) -> None:
        self._settings = settings
        self._store = store
        self._completion = completion
        # An entry lives only while some refresh of that conversation holds it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def current(self, conversation_id: str) -> Analysis:
        """The active points as an analysis, with the last stored message count."""
        points = await self._store.list_points(conversation_id)
        stored = await self._store.get_analysis(conversation_id)
        return Analysis.from_points(points, message_count=stored.message_count if stored else 0)

    async def analyze(
        self,
        conversation_id: str,
        categories: Iterable[str] | None = None,
    ) -> AnalysisResult:
        requested = resolve_categories(categories)
        async with self._lock_for(conversation_id):
            return await self._analyze(conversation_id, requested)

    async def _analyze(self, conversation_id: str, requested: list[Category]) -> AnalysisResult:
        existing = Analysis.from_points(await self._store.list_points(conversation_id))

        recent = await self._store.recent_messages(
            conversation_id, self._settings.analysis_window_messages
        )
        if not recent:
            return AnalysisResult(analysis=existing.model_copy(update={"message_count": 0}))

        messages = list(reversed(recent))
        logger.info(
            "Analyzing %d messages of %s (%s)",
            len(messages),
            conversation_id,
            ", ".join(c.value for c in requested),
        )
        max_points = self._settings.max_points_per_category
        text = await self._completion.complete(
            [
                {"role": "system", "content": build_analysis_prompt(requested, max_points)},
                {"role": "user", "content": render_transcript(messages)},
            ],
            model=self._settings.analysis_model,
            max_tokens=self._settings.analysis_max_tokens,
            temperature=self._settings.analysis_temperature,
        )

        parsed = parse_analysis_response(text, requested, max_points)
        if parsed is None:
            # Placeholders are shown, never stored; only the count advances
            await self._store.save_analysis(
                conversation_id,
                existing.model_copy(update={"message_count": len(messages)}),
                {},
            )
            return AnalysisResult(
                analysis=existing.merged(placeholders(requested), message_count=len(messages))
            )

        merged = existing.merged(parsed, message_count=len(messages))
        written = await self._store.save_analysis(conversation_id, merged, parsed)
        return AnalysisResult(analysis=merged, points=written)
