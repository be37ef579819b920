"""
kinerja_integrity/reporting.py - Integrity Reports

Renders pipeline results for people and for audit:
1. Deterministic plain-text report (stable field order, diff-friendly)
2. Operation report for full process calls
3. Markdown data quality report
4. JSON audit trail
5. Recovered records as a pandas DataFrame / CSV
6. Excel workbook (Summary, Errors, Warnings, Recovery Options, Records)

Author: Kinerja Dashboard Project
License: MIT
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from .models import (
    METADATA_FIELDS, DatabaseOperationResult, DataIntegrityResult, Employee,
    IntegrityError, IntegrityWarning,
)
from .scoring import data_quality_level, integrity_message, recovery_recommendation

logger = logging.getLogger(__name__)

REPORT_HEADER = "=== Data Integrity Report ==="


# =============================================================================
# PLAIN TEXT
# =============================================================================

def _location(item: Union[IntegrityError, IntegrityWarning]) -> str:
    parts = []
    if item.record_index is not None:
        parts.append(f"Record: {item.record_index}")
    if item.employee_name:
        parts.append(f"Employee: {item.employee_name}")
    if item.field_name:
        parts.append(f"Field: {item.field_name}")
    return ' | '.join(parts)


def report(result: DataIntegrityResult) -> str:
    """
    Render a validation result as plain text.

    The output contains no timestamps, so equal results render equal text.
    """
    summary = result.summary
    lines = [
        REPORT_HEADER,
        f"Status: {'VALID' if result.is_valid else 'INVALID'}",
        f"Message: {integrity_message(result)}",
        f"Integrity Score: {summary.integrity_score}/100 ({data_quality_level(summary.integrity_score)})",
        f"Recommended Action: {summary.recommended_action.value}",
        f"Recommendation: {recovery_recommendation(summary.recommended_action)}",
        f"Parse Strategy: {result.parse_strategy.value if result.parse_strategy else 'none'}",
        f"Total Records: {summary.total_records}",
        f"Corrupted Records: {summary.corrupted_records}",
        f"Recoverable Records: {summary.recoverable_records}",
        f"Data Loss: {summary.data_loss_percentage:.2f}%",
        f"Corruption Detected: {'yes' if result.has_corruption else 'no'}",
        f"Errors: {len(result.errors)}",
        f"Warnings: {len(result.warnings)}",
        "",
    ]

    if result.parse_errors:
        lines.append("PARSE ATTEMPTS:")
        lines.extend(f"{i}. {message}" for i, message in enumerate(result.parse_errors, 1))
        lines.append("")

    if result.errors:
        lines.append("ERRORS:")
        for i, error in enumerate(result.errors, 1):
            recoverable = 'recoverable' if error.recoverable else 'not recoverable'
            lines.append(f"{i}. [{error.severity.value}] {error.type.value}: {error.message} ({recoverable})")
            location = _location(error)
            if location:
                lines.append(f"   {location}")
            if error.details:
                lines.append(f"   Details: {error.details}")
        lines.append("")

    if result.warnings:
        lines.append("WARNINGS:")
        for i, warning in enumerate(result.warnings, 1):
            lines.append(f"{i}. {warning.type.value}: {warning.message}")
            location = _location(warning)
            if location:
                lines.append(f"   {location}")
            if warning.details:
                lines.append(f"   Details: {warning.details}")
        lines.append("")

    if result.recovery_options:
        lines.append("RECOVERY OPTIONS:")
        for i, option in enumerate(result.recovery_options, 1):
            lines.append(f"{i}. {option.description}")
            lines.append(f"   Action: {option.action}")
            lines.append(f"   Confidence: {option.confidence.value}")
            lines.append(f"   Risk Level: {option.risk_level.value}")
            lines.append(f"   Affected Fields: {', '.join(option.affected_fields) or 'none'}")
        lines.append("")

    return '\n'.join(lines).rstrip('\n') + '\n'


def operation_report(op_result: DatabaseOperationResult) -> str:
    """Render a process-call result, including storage failures."""
    meta = op_result.metadata
    lines = [
        REPORT_HEADER,
        f"Operation: {meta.operation}",
        f"Timestamp: {meta.timestamp}",
        f"Success: {'yes' if op_result.success else 'no'}",
        f"Records Processed: {meta.records_processed}",
        f"Records Recovered: {meta.records_recovered}",
        f"Records Skipped: {op_result.records_skipped}",
        f"Data Quality Score: {meta.data_quality_score}/100",
        "",
    ]
    sections = (
        ("ERRORS:", op_result.errors),
        ("STORAGE ERRORS:", op_result.storage_errors),
        ("WARNINGS:", op_result.warnings),
    )
    for title, items in sections:
        if items:
            lines.append(title)
            lines.extend(f"{i}. {item}" for i, item in enumerate(items, 1))
            lines.append("")

    if op_result.recovery_options:
        lines.append("RECOVERY OPTIONS:")
        for i, option in enumerate(op_result.recovery_options, 1):
            lines.append(f"{i}. {option.description}")
            lines.append(f"   Action: {option.action}")
            lines.append(f"   Confidence: {option.confidence.value}")
            lines.append(f"   Risk Level: {option.risk_level.value}")
            lines.append("")

    return '\n'.join(lines).rstrip('\n') + '\n'


# =============================================================================
# MARKDOWN / JSON
# =============================================================================

def to_markdown(result: DataIntegrityResult, source_name: Optional[str] = None,
                input_hash: Optional[str] = None) -> str:
    """Generate a markdown data quality report."""
    summary = result.summary
    total = summary.total_records

    def pct(count: int) -> str:
        return f"{count / total * 100:.1f}%" if total else "0.0%"

    md = "# Data Integrity Report\n\n"
    if source_name or input_hash:
        md += "## File Information\n"
        if source_name:
            md += f"- **Filename:** {source_name}\n"
        if input_hash:
            md += f"- **SHA-256 Hash:** `{input_hash}`\n"
        md += "\n"

    md += f"""## Verdict
- **Integrity Score:** {summary.integrity_score}/100 ({data_quality_level(summary.integrity_score)})
- **Recommended Action:** {summary.recommended_action.value}
- **Parse Strategy:** {result.parse_strategy.value if result.parse_strategy else 'none'}

{integrity_message(result)}. {recovery_recommendation(summary.recommended_action)}

## Record Statistics
| Metric | Count | Percentage |
|--------|-------|------------|
| Total Records | {total} | {'100.0%' if total else '0.0%'} |
| Corrupted Records | {summary.corrupted_records} | {pct(summary.corrupted_records)} |
| Recoverable Records | {summary.recoverable_records} | {pct(summary.recoverable_records)} |

"""
    if result.errors:
        counts: Dict[str, int] = {}
        for error in result.errors:
            key = f"{error.type.value} | {error.severity.value}"
            counts[key] = counts.get(key, 0) + 1
        md += "## Errors by Type\n| Type | Severity | Count |\n|------|----------|-------|\n"
        for key, count in sorted(counts.items()):
            md += f"| {key} | {count} |\n"
        md += "\n"

    if result.warnings:
        counts = {}
        for warning in result.warnings:
            counts[warning.type.value] = counts.get(warning.type.value, 0) + 1
        md += "## Warnings by Type\n| Type | Count |\n|------|-------|\n"
        for key, count in sorted(counts.items()):
            md += f"| {key} | {count} |\n"
        md += "\n"

    if result.recovery_options:
        md += "## Recovery Options\n"
        for option in result.recovery_options:
            md += (f"- **{option.type.value}** ({option.confidence.value} confidence, "
                   f"{option.risk_level.value}): {option.description}\n")
    return md


def to_audit_json(op_result: DatabaseOperationResult,
                  filepath: Optional[Union[str, Path]] = None,
                  source_name: Optional[str] = None,
                  input_hash: Optional[str] = None) -> str:
    """Serialize the full result as an audit trail; also written to ``filepath`` if given."""
    audit: Dict[str, Any] = {
        'source': {'filename': source_name, 'sha256': input_hash},
        'result': op_result.to_dict(),
    }
    text = json.dumps(audit, indent=2, ensure_ascii=False)
    if filepath is not None:
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(text)
    return text


# =============================================================================
# TABULAR
# =============================================================================

RECORD_COLUMNS = ['name', 'id'] + list(METADATA_FIELDS)


def records_to_dataframe(employees: List[Employee]) -> pd.DataFrame:
    """Wide table: descriptive columns then one column per competency."""
    competencies: List[str] = []
    rows = []
    for employee in employees:
        row = {col: getattr(employee, col) for col in RECORD_COLUMNS}
        for entry in employee.performance:
            if entry.name not in competencies:
                competencies.append(entry.name)
            row[entry.name] = entry.score
        rows.append(row)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS + competencies)


def _write_table(sheet, headers: List[str], rows: List[List[Any]],
                 header_font: Font, header_fill: PatternFill) -> None:
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = header_font
        cell.fill = header_fill
    for row in rows:
        sheet.append(row)
    for idx, header in enumerate(headers, 1):
        width = max([len(str(header))] + [len(str(r[idx - 1])) for r in rows if r[idx - 1] is not None])
        sheet.column_dimensions[get_column_letter(idx)].width = min(max(width + 2, 10), 60)


def export_workbook(op_result: DatabaseOperationResult,
                    output_path: Union[str, Path]) -> Path:
    """
    Write the integrity workbook.

    Sheets: Summary, Errors, Warnings, Recovery Options, Records.
    """
    output_path = Path(output_path)
    header_font = Font(bold=True, size=11, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")

    workbook = Workbook()
    summary_sheet = workbook.active
    summary_sheet.title = "Summary"
    summary_sheet['A1'] = "Data Integrity Summary"
    summary_sheet['A1'].font = Font(bold=True, size=14)

    meta = op_result.metadata
    integrity = op_result.integrity_result
    summary_rows = [
        ("Operation", meta.operation),
        ("Timestamp", meta.timestamp),
        ("Success", "yes" if op_result.success else "no"),
        ("Records Processed", meta.records_processed),
        ("Records Recovered", meta.records_recovered),
        ("Records Skipped", op_result.records_skipped),
        ("Data Quality Score", meta.data_quality_score),
        ("Quality Level", data_quality_level(meta.data_quality_score)),
    ]
    if integrity is not None:
        summary_rows.extend([
            ("Recommended Action", integrity.summary.recommended_action.value),
            ("Total Records", integrity.summary.total_records),
            ("Corrupted Records", integrity.summary.corrupted_records),
            ("Data Loss %", integrity.summary.data_loss_percentage),
        ])
    for row_idx, (label, value) in enumerate(summary_rows, 3):
        summary_sheet.cell(row=row_idx, column=1, value=label).font = Font(bold=True)
        summary_sheet.cell(row=row_idx, column=2, value=value)
    summary_sheet.column_dimensions['A'].width = 24
    summary_sheet.column_dimensions['B'].width = 32

    errors = integrity.errors if integrity is not None else []
    _write_table(
        workbook.create_sheet("Errors"),
        ["Record", "Employee", "Field", "Type", "Severity", "Recoverable", "Message", "Details"],
        [[e.record_index, e.employee_name, e.field_name, e.type.value, e.severity.value,
          "yes" if e.recoverable else "no", e.message, e.details] for e in errors]
        + [[None, None, None, "storage_error", None, "no", message, None]
           for message in op_result.storage_errors],
        header_font, header_fill,
    )

    _write_table(
        workbook.create_sheet("Warnings"),
        ["Warning"],
        [[w] for w in op_result.warnings],
        header_font, header_fill,
    )

    _write_table(
        workbook.create_sheet("Recovery Options"),
        ["Type", "Description", "Action", "Confidence", "Risk Level", "Affected Fields"],
        [[o.type.value, o.description, o.action, o.confidence.value, o.risk_level.value,
          ', '.join(o.affected_fields)] for o in op_result.recovery_options],
        header_font, header_fill,
    )

    records_sheet = workbook.create_sheet("Records")
    df = records_to_dataframe(op_result.data or [])
    for row in dataframe_to_rows(df, index=False, header=True):
        records_sheet.append([None if pd.isna(v) else v for v in row])
    for cell in records_sheet[1]:
        cell.font = header_font
        cell.fill = header_fill

    workbook.save(output_path)
    logger.info(f"Saved integrity workbook: {output_path}")
    return output_path


def save_reports(op_result: DatabaseOperationResult, output_dir: Union[str, Path],
                 base_name: str, input_hash: Optional[str] = None) -> Dict[str, Path]:
    """Save text, markdown, audit JSON, CSV and workbook outputs to a directory."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        'report': output_dir / f"{base_name}_integrity_report.txt",
        'markdown': output_dir / f"{base_name}_integrity_report.md",
        'audit': output_dir / f"{base_name}_audit_trail.json",
        'data': output_dir / f"{base_name}_recovered.csv",
        'workbook': output_dir / f"{base_name}_integrity.xlsx",
    }

    text = operation_report(op_result)
    if op_result.integrity_result is not None:
        text += "\n" + report(op_result.integrity_result)
        paths['markdown'].write_text(
            to_markdown(op_result.integrity_result, base_name, input_hash), encoding='utf-8'
        )
    else:
        del paths['markdown']
    paths['report'].write_text(text, encoding='utf-8')
    to_audit_json(op_result, paths['audit'], base_name, input_hash)
    records_to_dataframe(op_result.data or []).to_csv(paths['data'], index=False)
    export_workbook(op_result, paths['workbook'])

    return paths
