"""
JSON exporter — Produces the full machine-readable output of an analysis run.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .. import __version__
from ..scoring.models import AnalysisResult


def export_json(
    result: AnalysisResult,
    output_dir: Path,
    report_id: str,
    collector_results: Optional[dict] = None,
) -> Path:
    """
    Write the full analysis result to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "engine": "M365 Compromise Detection Engine",
            "version": __version__,
            "report_id": report_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
        },
        "analysis": result.to_dict(),
        "collection": _summarize_collection(collector_results or {}),
    }

    filepath = output_dir / f"compromise_analysis_{report_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath


def _summarize_collection(collector_results: dict) -> dict:
    """Collector status without the records themselves."""
    summary = {}
    for source, result in collector_results.items():
        summary[getattr(source, "value", str(source))] = result.to_dict()
    return summary
