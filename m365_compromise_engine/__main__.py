"""
M365 Compromise Detection Engine — Main Orchestrator

Usage:
    python -m m365_compromise_engine --input-dir ./exports
    python -m m365_compromise_engine --input-dir ./exports --allowed-country "United States"
    python -m m365_compromise_engine --input-dir ./exports --tenant-domain contoso.com --no-geo
    python -m m365_compromise_engine --input-dir ./exports --config engine.json --formats html csv

Reads exported CSV files only. It never connects to the tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .cache import GeoCache
from .collectors import SourceType, collect_all
from .collectors.base import CollectorResult
from .config import ConfigError, EngineConfig
from .enrichment import GeoLocator, enrich_sign_ins
from .reporting import export_csv, export_html, export_json, export_markdown
from .scoring import NoDataError, compute_risk
from .scoring.models import AnalysisResult

FORMAT_CHOICES = ["html", "csv", "json", "markdown"]


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_compromise_engine",
        description="M365 Compromise Detection Engine (offline CSV analysis)",
    )
    parser.add_argument(
        "--input-dir", "-i",
        type=Path,
        required=True,
        help="Directory holding the exported CSV files",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Output directory for reports (default: ./m365_compromise_report_<timestamp>)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--allowed-country",
        action="append",
        default=[],
        metavar="COUNTRY",
        help="Country considered normal for sign-ins (repeatable)",
    )
    parser.add_argument(
        "--tenant-domain",
        action="append",
        default=[],
        metavar="DOMAIN",
        help="Domain considered internal for forwarding and delegation checks (repeatable)",
    )
    parser.add_argument(
        "--risky-ip",
        action="append",
        default=[],
        metavar="IP",
        help="Additional IP to correlate against message trace (repeatable)",
    )
    parser.add_argument(
        "--no-geo",
        action="store_true",
        help="Skip IP geolocation of sign-ins with a blank country",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=FORMAT_CHOICES,
        default=None,
        help="Output formats to generate",
    )
    parser.add_argument(
        "--tenant-name",
        type=str,
        default="Unknown Tenant",
        help="Display name for the tenant in reports",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Build engine configuration from an optional config file plus CLI overrides."""
    config = EngineConfig.from_file(args.config) if args.config else EngineConfig()

    overrides = {}
    if args.allowed_country:
        overrides["allowed_countries"] = tuple(args.allowed_country)
    if args.tenant_domain:
        overrides["tenant_domains"] = tuple(d.lower() for d in args.tenant_domain)
    if overrides:
        config.detection = config.detection.with_overrides(**overrides)

    if args.no_geo:
        config.geo.enabled = False
    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(args.formats)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Request-level noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _banner(title: str):
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70 + "\n")


def run_collection(input_dir: Path, config: EngineConfig) -> dict[SourceType, CollectorResult]:
    """Load every export and print a per-source status line."""
    results = collect_all(input_dir, config.input_files)
    for source, result in results.items():
        meta = result.metadata
        if result.available:
            print(f"  ✅ {result.collector_name}: {meta['items_collected']} records "
                  f"({meta.get('duration_seconds', '?')}s)")
        elif meta["errors"]:
            print(f"  ❌ {result.collector_name}: FAILED — {meta['errors'][0]}")
        else:
            print(f"  ⏭  {result.collector_name}: not provided")
        for w in meta.get("warnings", []):
            print(f"      ⚠  {w}")
    return results


async def run_enrichment(
    sign_ins: list,
    config: EngineConfig,
) -> list:
    """Geolocate sign-ins whose export left the country blank."""
    async with GeoLocator(config.geo, GeoCache(config.geo.cache_ttl_seconds)) as locator:
        enriched = await enrich_sign_ins(sign_ins, locator)
        stats = locator.get_stats()
    print(f"  🌍 {stats['total_requests']} lookups, {stats['failed_lookups']} failed, "
          f"{stats['cached_entries']} cached")
    return enriched


def generate_reports(
    result: AnalysisResult,
    collector_results: dict,
    output_dir: Path,
    report_id: str,
    tenant_name: str,
    formats: list[str],
) -> list[Path]:
    """Generate all requested report formats."""
    created = []

    if "json" in formats:
        path = export_json(result, output_dir, report_id, collector_results)
        created.append(path)
        print(f"  📄 JSON:       {path}")

    if "csv" in formats:
        paths = export_csv(result, output_dir, report_id)
        created.extend(paths)
        for p in paths:
            print(f"  📊 CSV:        {p}")

    if "markdown" in formats:
        path = export_markdown(result, output_dir, report_id, tenant_name)
        created.append(path)
        print(f"  📝 Markdown:   {path}")

    if "html" in formats:
        path = export_html(result, output_dir, report_id, tenant_name)
        created.append(path)
        print(f"  🌐 HTML:       {path}")

    return created


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"\n❌ {e}")
        return 2

    configure_logging(config.verbose)

    print("=" * 70)
    print(f" M365 Compromise Detection Engine v{__version__}")
    print(" Mode: OFFLINE — analyzing exported data only")
    print("=" * 70)

    report_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    output_dir = config.output.report_dir
    print(f"\n📋 Report ID: {report_id}")
    print(f"📥 Input:     {args.input_dir.resolve()}")
    print(f"📂 Output:    {output_dir.resolve()}")
    print(f"🏢 Tenant:    {args.tenant_name}")

    # --- Collection Phase ---
    _banner("PHASE 1: DATA COLLECTION")
    collector_results = run_collection(args.input_dir, config)
    sources = {s: r.records for s, r in collector_results.items() if r.available}

    # --- Enrichment Phase ---
    _banner("PHASE 2: GEOLOCATION ENRICHMENT")
    sign_ins = sources.get(SourceType.SIGN_IN)
    if not config.geo.enabled:
        print("  ⏭  Geolocation disabled")
    elif not sign_ins:
        print("  ⏭  No sign-in data to enrich")
    else:
        sources[SourceType.SIGN_IN] = await run_enrichment(sign_ins, config)

    # --- Analysis & Scoring Phase ---
    _banner("PHASE 3: ANALYSIS & RISK SCORING")
    try:
        result = compute_risk(sources, config.detection, risky_ips=args.risky_ip)
    except NoDataError as e:
        print(f"  ❌ {e}")
        return 1

    counts = result.tier_counts()
    print(f"  Subjects scored:  {len(result.ranked)}")
    for tier, count in counts.items():
        print(f"    {tier:10s} {count}")
    print(f"  Spam indicators:  {len(result.spam_indicators)}")
    print(f"  Tenant findings:  {len(result.tenant_findings)}")
    if result.sources_missing:
        print(f"  Missing sources:  {', '.join(result.sources_missing)}")
    for record in result.ranked[:5]:
        print(f"    {record.subject:45s} {record.risk_score:4d}  {record.risk_tier.value}")

    # --- Reporting Phase ---
    _banner("PHASE 4: REPORT GENERATION")
    created_files = generate_reports(
        result=result,
        collector_results=collector_results,
        output_dir=output_dir,
        report_id=report_id,
        tenant_name=args.tenant_name,
        formats=config.output.formats,
    )

    _banner("ANALYSIS COMPLETE")
    print(f"  Critical: {counts['Critical']}  High: {counts['High']}")
    print(f"  Files: {len(created_files)} reports generated")
    print(f"  Path:  {output_dir.resolve()}")
    print()
    return 0


def main():
    """Synchronous entry point for `python -m m365_compromise_engine`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
