"""
CSV exporter — Produces structured CSV summaries of subject risk and spam findings.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..analyzers.base import EvidenceSource
from ..scoring.models import AnalysisResult

RECALL_TIERS = ("Critical", "High")


def export_csv(
    result: AnalysisResult,
    output_dir: Path,
    report_id: str,
) -> list[Path]:
    """
    Write the risk summary CSV and, when message trace produced
    indicators, the spam analysis and message recall CSVs.

    Returns:
        List of created CSV file paths.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    created = []

    # --- Risk summary CSV ---
    summary_path = output_dir / f"risk_summary_{report_id}.csv"
    SUMMARY_FIELDS = ["Subject", "RiskScore", "RiskTier"] + [s.value for s in EvidenceSource]

    with open(summary_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=SUMMARY_FIELDS)
        writer.writeheader()
        for record in result.ranked:
            row = {
                "Subject": record.subject,
                "RiskScore": record.risk_score,
                "RiskTier": record.risk_tier.value,
            }
            row.update({s.value: record.count(s) for s in EvidenceSource})
            writer.writerow(row)
    created.append(summary_path)

    if not result.spam_indicators:
        return created

    # --- Spam analysis CSV ---
    spam_path = output_dir / f"spam_analysis_{report_id}.csv"
    SPAM_FIELDS = [
        "Sender", "RiskType", "RiskLevel", "MessageCount", "RiskScore",
        "Description", "SampleRecipients", "SampleSubjects",
    ]

    with open(spam_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=SPAM_FIELDS)
        writer.writeheader()
        for i in result.spam_indicators:
            writer.writerow({
                "Sender": i.sender,
                "RiskType": i.risk_type,
                "RiskLevel": i.risk_level,
                "MessageCount": i.message_count,
                "RiskScore": i.risk_score,
                "Description": i.description,
                "SampleRecipients": "; ".join(i.recipients),
                "SampleSubjects": "; ".join(i.subjects),
            })
    created.append(spam_path)

    # --- Message recall CSV: one row per message ID of a Critical/High indicator ---
    recall_rows = [
        (i, message_id)
        for i in result.spam_indicators
        if i.risk_level in RECALL_TIERS
        for message_id in i.message_ids
    ]
    if recall_rows:
        recall_path = output_dir / f"message_recall_{report_id}.csv"
        with open(recall_path, "w", newline="", encoding="utf-8-sig") as fh:
            writer = csv.writer(fh)
            writer.writerow(["Sender", "RiskType", "RiskLevel", "MessageId"])
            for i, message_id in recall_rows:
                writer.writerow([i.sender, i.risk_type, i.risk_level, message_id])
        created.append(recall_path)

    return created
