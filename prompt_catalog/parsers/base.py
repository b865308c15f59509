# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Base Parser — Abstract interface for batch file parsers.

A parser only turns bytes into header + raw string cells; typing and
validation happen in BatchValidator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

EXTRA_CELLS = "__extra_cells__"  # set on rows wider than the header

RawRow = Tuple[int, Dict[str, str]]  # (1-based source row number, column → cell text)


@dataclass
class ParseResult:
    """Parser output — header columns and raw rows in file order."""

    columns: List[str]
    rows: List[RawRow] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseParser(ABC):
    """Abstract base class for all batch parsers."""

    @abstractmethod
    async def parse(self, content: bytes, **kwargs: Any) -> ParseResult:
        """Parse raw file content into header + rows."""
        ...

    @abstractmethod
    def supports(self, file_name: Optional[str]) -> bool:
        """Check if this parser can handle the given file type."""
        ...


def to_raw_row(columns: List[str], cells: List[str]) -> Dict[str, str]:
    """Zip cells onto the header, flagging non-blank cells beyond it."""
    padded = list(cells) + [""] * (len(columns) - len(cells))
    raw = dict(zip(columns, padded))
    extra = [c for c in cells[len(columns):] if c.strip()]
    if extra:
        raw[EXTRA_CELLS] = str(len(extra))
    return raw


def normalize_header(name: Any) -> str:
    """Lower-case, trimmed, spaces to underscores."""
    return str(name or "").strip().lower().replace(" ", "_")
