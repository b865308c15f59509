# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Batch Validator — Raw parsed rows → typed CandidateRecords + row errors.

Stateless with respect to the catalog: it never reads current state.
Malformed rows are excluded and reported; a prompt_id occurring twice in the
same batch rejects the whole batch.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from prompt_catalog.core.errors import (
    DUPLICATE_COLUMN,
    DUPLICATE_PROMPT_ID,
    INVALID_PHASE,
    INVALID_VALUE,
    MISSING_FIELD,
    UNRECOGNIZED_FIELD,
    BatchRejectedError,
    ErrorReport,
)
from prompt_catalog.parsers.base import EXTRA_CELLS, ParseResult
from prompt_catalog.protocols.records import CandidateRecord, Phase

logger = logging.getLogger("catalog.parsers.validator")

INGESTIBLE_COLUMNS = (
    "prompt_id",
    "addie_phase",
    "sub_category",
    "prompt_name",
    "prompt_text",
    "tags",
    "prerequisites",
    "expected_output",
    "version_notes",
    "author",
    "created_date",
    "embedding",
)
REQUIRED_COLUMNS = ("addie_phase", "prompt_name", "prompt_text")
COLUMN_ALIASES = {"phase": "addie_phase"}

# Namespace for prompt_ids derived from (phase, sub_category, name)
PROMPT_ID_NAMESPACE = uuid.UUID("6f1c2b8e-4a7d-5e39-9b0c-3d2f8a1e7c54")


@dataclass
class ValidationResult:
    candidates: List[CandidateRecord] = field(default_factory=list)
    errors: List[ErrorReport] = field(default_factory=list)


class RowInvalid(Exception):
    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


def derive_prompt_id(phase: Phase, sub_category: Optional[str], name: str) -> str:
    """Stable identifier for rows uploaded without a prompt_id."""
    key = "|".join([phase.value, (sub_category or "").strip().lower(), name.strip().lower()])
    return str(uuid.uuid5(PROMPT_ID_NAMESPACE, key))


def split_tags(raw: str, delimiter: str = ",") -> List[str]:
    """Split a delimited tag cell into an ordered, de-duplicated list."""
    tags: List[str] = []
    for part in raw.split(delimiter):
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_embedding(raw: str, delimiter: str = ",") -> List[float]:
    """Accept a JSON array of numbers or a delimited list of floats."""
    text = raw.strip()
    if text.startswith("["):
        values = json.loads(text)
        if not isinstance(values, list):
            raise ValueError("embedding must be a list")
    else:
        values = [v for v in text.split(delimiter) if v.strip()]
    return [float(v) for v in values]


class BatchValidator:
    """
    Turns a ParseResult into candidate records.

    Usage:
        result = BatchValidator(tag_delimiter=",").validate(parse_result)
    """

    def __init__(self, tag_delimiter: str = ",") -> None:
        self._delimiter = tag_delimiter

    def validate(self, parsed: ParseResult) -> ValidationResult:
        result = ValidationResult()
        columns = [COLUMN_ALIASES.get(c, c) for c in parsed.columns]
        self._reject_duplicate_columns(parsed.columns, columns)

        for column in columns:
            if column and column not in INGESTIBLE_COLUMNS:
                result.errors.append(ErrorReport(
                    identifier=None,
                    kind=UNRECOGNIZED_FIELD,
                    message=f"column {column!r} is not an ingestible field and was ignored",
                ))

        # Explicit ids count on every row, valid or not; derived ids only once built
        rows_by_id: Dict[str, List[int]] = defaultdict(list)
        for row_no, raw in parsed.rows:
            cells = {COLUMN_ALIASES.get(k, k): (v or "").strip() for k, v in raw.items()}
            explicit_id = cells.get("prompt_id")
            if explicit_id:
                rows_by_id[explicit_id].append(row_no)
            try:
                candidate = self._validate_row(row_no, cells)
            except RowInvalid as e:
                result.errors.append(ErrorReport(
                    identifier=explicit_id or None,
                    kind=e.kind,
                    message=str(e),
                    row=row_no,
                ))
                continue
            if not explicit_id:
                rows_by_id[candidate.prompt_id].append(row_no)
            result.candidates.append(candidate)

        self._reject_duplicates(rows_by_id)

        logger.info(
            "Batch validated: %d candidates, %d errors",
            len(result.candidates), len(result.errors),
        )
        return result

    def _validate_row(self, row_no: int, cells: Dict[str, str]) -> CandidateRecord:
        if cells.get(EXTRA_CELLS):
            raise RowInvalid(
                INVALID_VALUE, f"row has {cells[EXTRA_CELLS]} non-empty cell(s) beyond the header",
            )
        for column in REQUIRED_COLUMNS:
            if not cells.get(column):
                raise RowInvalid(MISSING_FIELD, f"required field {column!r} is empty")

        try:
            phase = Phase.parse(cells["addie_phase"])
        except ValueError:
            raise RowInvalid(
                INVALID_PHASE,
                f"addie_phase {cells['addie_phase']!r} is not one of "
                + ", ".join(p.value for p in Phase),
            )

        created: Optional[date] = None
        if cells.get("created_date"):
            try:
                created = date.fromisoformat(cells["created_date"])
            except ValueError:
                raise RowInvalid(
                    INVALID_VALUE, f"created_date {cells['created_date']!r} is not YYYY-MM-DD",
                )

        embedding: Optional[List[float]] = None
        if cells.get("embedding"):
            try:
                embedding = parse_embedding(cells["embedding"], self._delimiter)
            except (ValueError, TypeError):
                raise RowInvalid(INVALID_VALUE, "embedding is not a list of numbers")

        sub_category = cells.get("sub_category") or None
        prompt_id = cells.get("prompt_id") or derive_prompt_id(
            phase, sub_category, cells["prompt_name"],
        )

        return CandidateRecord(
            prompt_id=prompt_id,
            addie_phase=phase,
            prompt_name=cells["prompt_name"],
            prompt_text=cells["prompt_text"],
            sub_category=sub_category,
            tags=split_tags(cells.get("tags", ""), self._delimiter),
            prerequisites=cells.get("prerequisites") or None,
            expected_output=cells.get("expected_output") or None,
            version_notes=cells.get("version_notes") or None,
            author=cells.get("author") or None,
            created_date=created,
            embedding=embedding,
            row=row_no,
        )

    @staticmethod
    def _reject_duplicate_columns(raw_columns: List[str], columns: List[str]) -> None:
        """A field named twice in the header (directly or via an alias) is ambiguous."""
        sources: Dict[str, List[str]] = defaultdict(list)
        for raw, column in zip(raw_columns, columns):
            if column:
                sources[column].append(raw)

        duplicates = [
            ErrorReport(
                identifier=None,
                kind=DUPLICATE_COLUMN,
                message=f"field {column!r} is given by header columns {names}",
            )
            for column, names in sources.items()
            if len(names) > 1
        ]
        if duplicates:
            raise BatchRejectedError(
                f"{len(duplicates)} field(s) occur more than once in the header",
                errors=duplicates,
            )

    @staticmethod
    def _reject_duplicates(rows_by_id: Dict[str, List[int]]) -> None:
        duplicates = [
            ErrorReport(
                identifier=pid,
                kind=DUPLICATE_PROMPT_ID,
                message=f"prompt_id appears on rows {rows}",
                row=rows[1],
            )
            for pid, rows in rows_by_id.items()
            if len(rows) > 1
        ]
        if duplicates:
            raise BatchRejectedError(
                f"{len(duplicates)} prompt_id(s) occur more than once in the batch",
                errors=duplicates,
            )
