"""
Migration Report

Renders a run's timings, counts, throughput and validation outcomes as a
plain-text report and writes it to a timestamped file.
"""

from datetime import datetime
from typing import Any, Dict, Optional
import logging
import os

from catalog_migration.entities import MIGRATION_ORDER
from catalog_migration.type_mapping import get_type_mapping_summary

logger = logging.getLogger(__name__)

REPORT_FILENAME_FORMAT = "migration_report_%Y%m%d_%H%M%S.txt"


def calculate_throughput(total_records: int, elapsed_seconds: float) -> float:
    """Records per second, 0 when no time elapsed."""
    return total_records / elapsed_seconds if elapsed_seconds > 0 else 0.0


def _format_time(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else "n/a"


def generate_migration_report(run: Dict[str, Any]) -> str:
    """
    Generate a human-readable migration report.

    Args:
        run: Run state from MigrationOrchestrator with keys status,
            start_time, end_time, stage_timings, source_validation,
            migration, target_validation, cross_validation, error_message

    Returns:
        Formatted report string
    """
    start_time = run.get('start_time')
    end_time = run.get('end_time')
    total_duration = (end_time - start_time).total_seconds() if start_time and end_time else 0.0

    migration = run.get('migration') or {}
    source_validation = run.get('source_validation') or {}
    target_validation = run.get('target_validation') or {}
    cross_validation = run.get('cross_validation') or {}

    total_records = migration.get('total_records', 0)
    migration_seconds = migration.get('elapsed_time_seconds', 0.0)

    report_lines = [
        "=" * 80,
        "COMPLETE MIGRATION REPORT",
        "=" * 80,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Status: {run.get('status', 'Unknown')}",
        f"Start Time: {_format_time(start_time)}",
        f"End Time: {_format_time(end_time)}",
        f"Total Duration: {total_duration:.2f} seconds",
        "",
    ]

    report_lines.extend([
        "PERFORMANCE METRICS",
        "-" * 40,
    ])
    for stage, seconds in (run.get('stage_timings') or {}).items():
        report_lines.append(f"{stage:<30} {seconds:>10.2f} s")
    for kind_name, seconds in (migration.get('entity_timings') or {}).items():
        report_lines.append(f"  {kind_name:<28} {seconds:>10.2f} s")
    report_lines.extend([
        f"Throughput: {calculate_throughput(total_records, migration_seconds):,.2f} records/second",
        "",
    ])

    source_counts = source_validation.get('counts') or cross_validation.get('source_counts') or {}
    migrated_counts = migration.get('counts') or {}
    report_lines.extend([
        "DATA SUMMARY",
        "-" * 40,
        f"{'Entity':<20} | {'Source':>10} | {'Migrated':>10}",
    ])
    for kind in MIGRATION_ORDER:
        source_count = source_counts.get(kind.name)
        migrated_count = migrated_counts.get(kind.name)
        report_lines.append(
            f"{kind.name:<20} | "
            f"{source_count if source_count is not None else '-':>10} | "
            f"{migrated_count if migrated_count is not None else '-':>10}"
        )
    report_lines.extend([
        f"Total Records Migrated: {total_records:,}",
        "",
    ])

    report_lines.extend([
        "TYPE MAPPING",
        "-" * 40,
    ])
    for source_type, target_type, note in get_type_mapping_summary():
        line = f"{source_type:<18} -> {target_type}"
        if note:
            line += f"  ({note})"
        report_lines.append(line)
    report_lines.append("")

    report_lines.extend([
        "VALIDATION RESULTS",
        "-" * 40,
    ])
    for label, result, key in (
        ("Source Integrity", source_validation, 'is_valid'),
        ("Target Integrity", target_validation, 'is_valid'),
        ("Cross-Consistency", cross_validation, 'is_consistent'),
    ):
        if not result:
            report_lines.append(f"{label}: not run")
            continue
        status = "✓ PASS" if result.get(key) else "✗ FAIL"
        report_lines.append(f"{label}: {status}")
    if cross_validation:
        report_lines.append(f"Products Sampled: {cross_validation.get('products_sampled', 0)}")

    errors = []
    for result in (source_validation, target_validation, cross_validation):
        errors.extend(result.get('errors', []) if result else [])
    warnings = []
    for result in (source_validation, target_validation):
        warnings.extend(result.get('warnings', []) if result else [])

    if errors:
        report_lines.extend([
            "",
            "VALIDATION ERRORS",
            "-" * 40,
        ])
        report_lines.extend(f"  • {error}" for error in errors)

    if warnings:
        report_lines.extend([
            "",
            "VALIDATION WARNINGS",
            "-" * 40,
        ])
        report_lines.extend(f"  • {warning}" for warning in warnings)

    if run.get('error_message'):
        report_lines.extend([
            "",
            "ERROR",
            "-" * 40,
            run['error_message'],
        ])

    report_lines.extend([
        "",
        "=" * 80,
        "END OF REPORT",
        "=" * 80,
    ])

    return "\n".join(report_lines)


def write_report_file(content: str, directory: str = '.', timestamp: Optional[datetime] = None) -> str:
    """
    Write a report to <directory>/migration_report_YYYYMMDD_HHMMSS.txt.

    Returns:
        Path of the written file
    """
    timestamp = timestamp or datetime.now()
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, timestamp.strftime(REPORT_FILENAME_FORMAT))
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    logger.info(f"Migration report written to {path}")
    return path
