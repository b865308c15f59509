# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Prompt Ranker — Keyword retrieval for the conversational agent webhook.

Only active prompts are candidates. A query is tokenized and matched against
name, tags, sub-category and prompt text with per-field weights; ties are
broken by average rating, then usage count (missing aggregates count as 0),
then prompt_id so that results are stable.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from prompt_catalog.protocols.records import Phase, PromptRecord

if TYPE_CHECKING:
    from prompt_catalog.storage.repositories import CatalogRepository

logger = logging.getLogger("catalog.query")

FIELD_WEIGHTS: Dict[str, float] = {
    "prompt_name": 3.0,
    "tags": 3.0,
    "sub_category": 2.0,
    "prompt_text": 1.0,
}

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: Optional[str]) -> List[str]:
    return _TOKEN_RE.findall(text.lower()) if text else []


@dataclass
class RankedPrompt:
    record: PromptRecord
    score: float


def score_record(record: PromptRecord, terms: List[str]) -> float:
    fields = {
        "prompt_name": set(tokenize(record.prompt_name)),
        "tags": set(tokenize(" ".join(record.tags))),
        "sub_category": set(tokenize(record.sub_category)),
        "prompt_text": set(tokenize(record.prompt_text)),
    }
    score = 0.0
    for term in terms:
        for name, tokens in fields.items():
            if term in tokens:
                score += FIELD_WEIGHTS[name]
    return score


def rank(records: List[PromptRecord], query: Optional[str], limit: int) -> List[RankedPrompt]:
    """Pure ranking over already-loaded records."""
    terms = list(dict.fromkeys(tokenize(query)))
    ranked: List[RankedPrompt] = []
    for record in records:
        if not record.is_active:
            continue
        score = score_record(record, terms) if terms else 0.0
        if terms and score == 0:
            continue
        ranked.append(RankedPrompt(record=record, score=score))

    ranked.sort(key=lambda r: (
        -r.score,
        -(r.record.avg_rating or 0.0),
        -(r.record.usage_count or 0),
        r.record.prompt_id,
    ))
    return ranked[:limit]


class PromptRanker:
    """
    Usage:
        ranker = PromptRanker(repo)
        results = await ranker.search(phase=Phase.DESIGN, query="learning objectives", limit=5)
    """

    def __init__(self, repo: "CatalogRepository") -> None:
        self._repo = repo

    async def search(
        self,
        phase: Optional[Phase] = None,
        query: Optional[str] = None,
        limit: int = 5,
    ) -> List[RankedPrompt]:
        records = await self._repo.list_prompts(phase=phase, active_only=True, offset=0, limit=None)
        results = rank(records, query, limit)
        logger.info(
            "Prompt search phase=%s query=%r: %d of %d candidates",
            phase.value if phase else None, query, len(results), len(records),
        )
        return results
