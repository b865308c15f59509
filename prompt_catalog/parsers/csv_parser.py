# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
CSV Parser — Header row + one candidate prompt per line.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Any, Optional

from prompt_catalog.core.errors import UnsupportedBatchFormatError
from prompt_catalog.parsers.base import (
    BaseParser,
    ParseResult,
    normalize_header,
    to_raw_row,
)

logger = logging.getLogger("catalog.parsers.csv")


class CSVParser(BaseParser):
    """CSV batch parser (UTF-8, BOM tolerated)."""

    async def parse(self, content: bytes, **kwargs: Any) -> ParseResult:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise UnsupportedBatchFormatError(f"batch file is not UTF-8 text: {e}") from e
        reader = csv.reader(io.StringIO(text, newline=""))

        columns: list[str] = []
        result = ParseResult(columns=columns, metadata={"parser": "csv"})
        try:
            for line_no, cells in enumerate(reader, start=1):
                if not any(c.strip() for c in cells):
                    continue
                if not columns:
                    columns.extend(normalize_header(c) for c in cells)
                    continue
                result.rows.append((line_no, to_raw_row(columns, cells)))
        except csv.Error as e:
            raise UnsupportedBatchFormatError(f"malformed CSV: {e}") from e

        result.metadata["total_rows"] = len(result.rows)
        logger.debug("CSV parsed: %d columns, %d rows", len(columns), len(result.rows))
        return result

    def supports(self, file_name: Optional[str]) -> bool:
        return bool(file_name) and file_name.lower().endswith(".csv")
