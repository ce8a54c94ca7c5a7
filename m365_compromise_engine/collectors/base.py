"""
Base collector class — Abstract interface for all input collectors.
Collectors load one exported CSV data source each and hand back
normalized records plus timing metadata.
"""

from __future__ import annotations

import codecs
import csv
import io
import logging
import time
from abc import ABC
from pathlib import Path
from typing import Any, Optional

from .normalizer import SourceType, normalize_records, resolve_columns

logger = logging.getLogger("m365_compromise_engine.collectors")

DELIMITER_CANDIDATES = ",;\t|"


class CollectorResult:
    """Standardized result from a collector."""

    def __init__(self, collector_name: str, source: SourceType):
        self.collector_name = collector_name
        self.source = source
        self.records: list = []
        self.available = False
        self.metadata: dict[str, Any] = {
            "collector": collector_name,
            "path": None,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_collected": 0,
            "errors": [],
            "warnings": [],
            "skipped_sections": [],
        }

    def add_records(self, records: list):
        self.records.extend(records)
        self.metadata["items_collected"] += len(records)

    def add_error(self, error: str):
        self.metadata["errors"].append(error)
        logger.error(f"[{self.collector_name}] {error}")

    def add_warning(self, warning: str):
        self.metadata["warnings"].append(warning)
        logger.warning(f"[{self.collector_name}] {warning}")

    def add_skipped(self, section: str, reason: str):
        self.metadata["skipped_sections"].append({"section": section, "reason": reason})
        logger.info(f"[{self.collector_name}] Skipped {section}: {reason}")

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "available": self.available,
            "metadata": self.metadata,
        }


def _decode(data: bytes) -> str:
    """Decode export bytes, honouring a UTF-16 BOM from PowerShell Out-File."""
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16", errors="replace")
    return data.decode("utf-8-sig", errors="replace")


def read_csv_rows(path: Path) -> list[dict[str, str]]:
    """
    Read an exported CSV tolerating a UTF-8 or UTF-16 BOM, an Excel `sep=`
    preamble, non-comma delimiters and empty files.
    """
    text = _decode(Path(path).read_bytes())
    lines = text.splitlines()
    delimiter = ","
    if lines and lines[0].strip().lower().startswith("sep="):
        declared = lines[0].strip()[4:]
        delimiter = declared[:1] or ","
        lines = lines[1:]
    elif lines:
        try:
            delimiter = csv.Sniffer().sniff("\n".join(lines[:50]), delimiters=DELIMITER_CANDIDATES).delimiter
        except csv.Error:
            delimiter = ","

    if not any(line.strip() for line in lines):
        return []

    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    rows = []
    for row in reader:
        # Short rows come back with None values, long rows with a None key
        row.pop(None, None)
        if any(v for v in row.values()):
            rows.append(row)
    return rows


class BaseCollector(ABC):
    """
    Abstract base class for all collectors.

    The base class provides:
      - Missing-file handling (source marked unavailable, never an error)
      - Timing and metadata
      - Error handling wrapper
    """

    name: str = "base"
    source: SourceType = SourceType.SIGN_IN
    description: str = "Base collector"

    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path else None

    def execute(self) -> CollectorResult:
        """Load and normalize the source file with timing and error handling."""
        result = CollectorResult(self.name, self.source)
        result.metadata["started_at"] = time.time()
        result.metadata["path"] = str(self.path) if self.path else None

        try:
            if self.path is None or not self.path.is_file():
                result.add_skipped(self.source.value, f"input file not found: {self.path}")
            else:
                logger.info(f"[{self.name}] Loading {self.path}")
                rows = self.read_rows()
                result.add_records(normalize_records(rows, self.source))
                result.available = True
                if not rows:
                    result.add_warning(f"{self.path.name} contains no data rows")
                elif not resolve_columns(rows[0].keys(), self.source):
                    result.add_warning(
                        f"{self.path.name} has no recognized columns; every field will be blank"
                    )
        except Exception as e:
            result.add_error(f"Collection failed: {type(e).__name__}: {e}")

        result.metadata["completed_at"] = time.time()
        result.metadata["duration_seconds"] = round(
            result.metadata["completed_at"] - result.metadata["started_at"], 2
        )
        return result

    def read_rows(self) -> list[dict[str, str]]:
        return read_csv_rows(self.path)
