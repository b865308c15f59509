# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Parser Registry — Select the batch parser based on file extension.
"""

from __future__ import annotations

import logging
from typing import Optional

from prompt_catalog.core.errors import UnsupportedBatchFormatError
from prompt_catalog.parsers.base import BaseParser
from prompt_catalog.parsers.csv_parser import CSVParser
from prompt_catalog.parsers.excel_parser import ExcelParser

logger = logging.getLogger("catalog.parsers.registry")


class ParserRegistry:
    """Batch files are CSV or Excel; anything else is rejected."""

    def __init__(self) -> None:
        self._parsers: list[BaseParser] = [CSVParser(), ExcelParser()]

    def get_parser(self, file_name: Optional[str]) -> BaseParser:
        for parser in self._parsers:
            if parser.supports(file_name):
                logger.debug(
                    "Selected parser %s for file=%s", parser.__class__.__name__, file_name,
                )
                return parser
        raise UnsupportedBatchFormatError(f"no batch parser for file {file_name!r}")
