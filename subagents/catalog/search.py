"""Ranked lookup over catalog entries.

Filters are applied before ranking. Matching entries are ordered by:

1. exact (case-insensitive) name match
2. exact tag match
3. substring match in description, keywords, name or tags, by the share of
   query tokens found (higher first)
4. name, alphabetically
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import AgentDescriptor

_TOKEN_RE = re.compile(r"[a-z0-9]+")

TIER_NAME = 0
TIER_TAG = 1
TIER_TEXT = 2
TIER_ANY = 3  # empty query: everything that passed the filters


@dataclass
class SearchQuery:
    """Query for searching the catalog."""

    text: str = ""
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    limit: int | None = 20


@dataclass
class SearchHit:
    agent: AgentDescriptor
    tier: int
    score: float = 0.0

    def sort_key(self) -> tuple:
        return (self.tier, -self.score, self.agent.name)


@dataclass
class SearchResult:
    """Result of a catalog search, best match first."""

    hits: list[SearchHit] = field(default_factory=list)
    total_count: int = 0
    query: SearchQuery = field(default_factory=SearchQuery)

    @property
    def entries(self) -> list[AgentDescriptor]:
        return [h.agent for h in self.hits]


class SearchIndex:
    """Fuzzy, ranked search over a Catalog."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def search(self, query: SearchQuery | str) -> SearchResult:
        if isinstance(query, str):
            query = SearchQuery(text=query)

        candidates = self.catalog.list(category=query.category, tags=query.tags)
        text = query.text.strip().lower()

        hits = []
        for agent in candidates:
            hit = _rank(agent, text)
            if hit is not None:
                hits.append(hit)

        hits.sort(key=SearchHit.sort_key)
        total = len(hits)
        if query.limit is not None:
            hits = hits[: query.limit]
        return SearchResult(hits=hits, total_count=total, query=query)


def _rank(agent: AgentDescriptor, text: str) -> SearchHit | None:
    if not text:
        return SearchHit(agent=agent, tier=TIER_ANY)

    if agent.name.lower() == text:
        return SearchHit(agent=agent, tier=TIER_NAME, score=1.0)

    if text in {t.lower() for t in agent.tags}:
        return SearchHit(agent=agent, tier=TIER_TAG, score=1.0)

    score = token_overlap(text, _haystack(agent))
    if score > 0:
        return SearchHit(agent=agent, tier=TIER_TEXT, score=score)
    return None


def _haystack(agent: AgentDescriptor) -> str:
    return " ".join(
        [agent.name, agent.description, *sorted(agent.keywords), *sorted(agent.tags)]
    ).lower()


def token_overlap(text: str, haystack: str) -> float:
    """Share of query tokens that occur as substrings of ``haystack``.

    The whole query occurring verbatim counts as a full match.
    """
    if text in haystack:
        return 1.0
    tokens = set(_TOKEN_RE.findall(text))
    if not tokens:
        return 0.0
    found = sum(1 for token in tokens if token in haystack)
    return found / len(tokens)
