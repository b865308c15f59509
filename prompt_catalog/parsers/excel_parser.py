# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Excel Parser — First worksheet of an .xlsx batch file.

Uses openpyxl (synchronous) wrapped in asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import io
import logging
import zipfile
from datetime import date, datetime
from typing import Any, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from prompt_catalog.core.errors import UnsupportedBatchFormatError
from prompt_catalog.parsers.base import (
    BaseParser,
    ParseResult,
    normalize_header,
    to_raw_row,
)

logger = logging.getLogger("catalog.parsers.excel")


class ExcelParser(BaseParser):
    """Excel batch parser."""

    async def parse(self, content: bytes, **kwargs: Any) -> ParseResult:
        return await asyncio.to_thread(self._sync_parse, content)

    def supports(self, file_name: Optional[str]) -> bool:
        return bool(file_name) and file_name.lower().endswith(".xlsx")

    @staticmethod
    def _cell_text(cell: Any) -> str:
        if cell is None:
            return ""
        if isinstance(cell, datetime):
            return cell.date().isoformat()
        if isinstance(cell, date):
            return cell.isoformat()
        return str(cell)

    @classmethod
    def _sync_parse(cls, content: bytes) -> ParseResult:
        """Synchronous Excel parsing — runs in thread pool."""
        try:
            wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (zipfile.BadZipFile, InvalidFileException) as e:
            raise UnsupportedBatchFormatError(f"batch file is not a readable workbook: {e}") from e
        except Exception as e:
            # Malformed XML parts inside an otherwise valid zip
            raise UnsupportedBatchFormatError(f"batch workbook is corrupt: {e!r}") from e
        try:
            ws = wb.worksheets[0]
            columns: list[str] = []
            result = ParseResult(
                columns=columns,
                metadata={"parser": "excel", "sheet": ws.title},
            )
            for row_no, row in enumerate(ws.iter_rows(values_only=True), start=1):
                cells = [cls._cell_text(c) for c in row]
                if not any(c.strip() for c in cells):
                    continue
                if not columns:
                    columns.extend(normalize_header(c) for c in cells)
                    continue
                result.rows.append((row_no, to_raw_row(columns, cells)))
        except Exception as e:
            raise UnsupportedBatchFormatError(f"batch workbook is corrupt: {e!r}") from e
        finally:
            wb.close()

        result.metadata["total_rows"] = len(result.rows)
        logger.debug(
            "Excel parsed: sheet=%s %d rows", result.metadata["sheet"], len(result.rows),
        )
        return result
