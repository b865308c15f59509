# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Catalog Errors — Ingestion error taxonomy and structured error reports.

  (a) row-level validation  → ErrorReport, batch continues
  (b) batch-level rejection → BatchRejectedError, nothing committed
  (c) write conflict        → WriteConflictError, retried then reported per prompt_id
  (d) systemic              → WarehouseUnavailableError / LandingStoreError, invocation fails
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

# Error kinds carried by ErrorReport.kind
MISSING_FIELD = "missing_field"
INVALID_PHASE = "invalid_phase"
INVALID_VALUE = "invalid_value"
UNRECOGNIZED_FIELD = "unrecognized_field"
DUPLICATE_PROMPT_ID = "duplicate_prompt_id"
DUPLICATE_COLUMN = "duplicate_column"
UNSUPPORTED_FORMAT = "unsupported_format"
WRITE_CONFLICT = "write_conflict"
WRITE_FAILED = "write_failed"


@dataclass
class ErrorReport:
    """One structured error: which identifier, what kind, and why."""

    identifier: Optional[str]
    kind: str
    message: str
    row: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CatalogError(Exception):
    """Base class for all prompt catalog errors."""

    kind = "catalog_error"


class BatchRejectedError(CatalogError):
    """The whole batch is ambiguous and must not be partially applied."""

    def __init__(self, message: str, errors: Optional[List[ErrorReport]] = None):
        super().__init__(message)
        self.errors = errors or []


class UnsupportedBatchFormatError(BatchRejectedError):
    kind = UNSUPPORTED_FORMAT


class WriteConflictError(CatalogError):
    """The current version changed between planning and commit."""

    kind = WRITE_CONFLICT

    def __init__(self, prompt_id: str, expected_version: Optional[int]):
        super().__init__(
            f"version of {prompt_id} is no longer {expected_version}"
        )
        self.prompt_id = prompt_id
        self.expected_version = expected_version


class SystemicError(CatalogError):
    """Infrastructure failure: the invocation fails and relies on redelivery."""

    kind = "systemic"


class WarehouseUnavailableError(SystemicError):
    kind = "warehouse_unavailable"


class LandingStoreError(SystemicError):
    kind = "landing_store_unavailable"


class WarehouseStatementError(CatalogError):
    """A single statement was refused (bad data); other rows are unaffected."""

    kind = WRITE_FAILED
