"""
kinerja_integrity/recovery.py - Recovery Engine

Applies policy-gated fixes to the aggregated records:
1. Skip records (unrecoverable, or any error when auto-fix is off)
2. Drop the losing side of a duplicate identity
3. Placeholder names for nameless records
4. Default "Overall: 0" entry for empty performance
5. Drop or truncate invalid competency names
6. Zero-substitute non-numeric scores
7. Truncate oversized performance lists
8. Optional empty-string placeholders for missing metadata

DESIGN: "Every Fix Leaves a Trace"
Each applied fix appends exactly one warning with before/after values.
With auto-fix disabled nothing is mutated: the same fixes are computed
on a scratch copy and reported as previews.

Author: Kinerja Dashboard Project
License: MIT
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
import logging

from .models import (
    METADATA_FIELDS, CompetencyScore, Employee, ErrorType, IntegrityError,
    IntegrityWarning, WarningType,
)
from .policy import (
    COMPETENCY_NAME_MAX_LENGTH, DEFAULT_COMPETENCY_NAME, DEFAULT_COMPETENCY_SCORE,
    PLACEHOLDER_NAME_TEMPLATE, RecoveryPolicy, require_policy,
)
from .records import collapse_whitespace, competency_name_is_valid, normalize_identity

logger = logging.getLogger(__name__)


@dataclass
class RecoveryOutcome:
    """Recovered records plus the audit trail of what was done."""
    data: List[Employee] = field(default_factory=list)
    records_fixed: int = 0
    records_skipped: int = 0
    warnings: List[IntegrityWarning] = field(default_factory=list)
    preview: bool = False


class _PlaceholderNames:
    """Deterministic 'Unnamed Employee NNN' generator that avoids taken names."""

    def __init__(self, employees: List[Employee]):
        self._taken: Set[str] = {normalize_identity(e.name) for e in employees if e.name}
        self._number = 0

    def next(self) -> str:
        while True:
            self._number += 1
            name = PLACEHOLDER_NAME_TEMPLATE.format(number=self._number)
            if normalize_identity(name) not in self._taken:
                self._taken.add(normalize_identity(name))
                return name


def _fix(employee: Employee, warning_type: WarningType, message: str, field_name: str,
         before, after, details: str = "") -> IntegrityWarning:
    return IntegrityWarning(
        type=warning_type,
        message=message,
        details=details,
        record_index=employee.source_index,
        employee_name=employee.name or None,
        field_name=field_name,
        original_value=before,
        new_value=after,
    )


def _repair(employee: Employee, policy: RecoveryPolicy,
            placeholders: _PlaceholderNames) -> List[IntegrityWarning]:
    """Mutate ``employee`` in place; one warning per applied fix."""
    fixes: List[IntegrityWarning] = []

    if not employee.name:
        placeholder = placeholders.next()
        employee.name = placeholder
        fixes.append(_fix(
            employee, WarningType.DEFAULT_APPLIED, "Generated placeholder name",
            'name', "", placeholder,
        ))

    kept: List[CompetencyScore] = []
    for position, entry in enumerate(employee.performance):
        field_name = f"performance[{position}]"
        if not competency_name_is_valid(entry.name):
            truncated = collapse_whitespace(entry.name[:COMPETENCY_NAME_MAX_LENGTH])
            if len(entry.name) > COMPETENCY_NAME_MAX_LENGTH and competency_name_is_valid(truncated):
                fixes.append(_fix(
                    employee, WarningType.RECORD_FIXED, "Competency name truncated",
                    f"{field_name}.name", entry.name, truncated,
                    details=f"Limited to {COMPETENCY_NAME_MAX_LENGTH} characters",
                ))
                entry.name = truncated
            else:
                fixes.append(_fix(
                    employee, WarningType.RECORD_FIXED, "Invalid competency entry removed",
                    field_name, entry.name, None,
                    details=f"Score {entry.score} discarded with the entry",
                ))
                continue
        if entry.score is None:
            fixes.append(_fix(
                employee, WarningType.DEFAULT_APPLIED,
                f"Score for '{entry.name}' set to {DEFAULT_COMPETENCY_SCORE:g}",
                f"{field_name}.score", None, DEFAULT_COMPETENCY_SCORE,
            ))
            entry.score = DEFAULT_COMPETENCY_SCORE
        kept.append(entry)
    employee.performance = kept

    limit = policy.max_performance_entries
    if len(employee.performance) > limit:
        dropped = [c.name for c in employee.performance[limit:]]
        fixes.append(_fix(
            employee, WarningType.RECORD_FIXED, "Performance list truncated",
            'performance', len(employee.performance), limit,
            details=f"Removed {len(dropped)} entries: {', '.join(dropped)}",
        ))
        employee.performance = employee.performance[:limit]

    if not employee.performance and policy.use_default_values:
        employee.performance = [CompetencyScore(DEFAULT_COMPETENCY_NAME, DEFAULT_COMPETENCY_SCORE)]
        fixes.append(_fix(
            employee, WarningType.DEFAULT_APPLIED, "Default performance entry added",
            'performance', [], f"{DEFAULT_COMPETENCY_NAME}: {DEFAULT_COMPETENCY_SCORE:g}",
        ))

    if policy.fill_missing_metadata and policy.use_default_values:
        for meta in METADATA_FIELDS:
            if getattr(employee, meta) is None:
                setattr(employee, meta, "")
                fixes.append(_fix(
                    employee, WarningType.DEFAULT_APPLIED, f"Empty placeholder for '{meta}'",
                    meta, None, "",
                ))

    return fixes


def _as_preview(warning: IntegrityWarning) -> IntegrityWarning:
    return IntegrityWarning(
        type=WarningType.RECOVERY_PREVIEW,
        message=f"Would apply: {warning.message}",
        details=warning.details,
        record_index=warning.record_index,
        employee_name=warning.employee_name,
        field_name=warning.field_name,
        original_value=warning.original_value,
        new_value=warning.new_value,
    )


def _skip_reason(record_errors: List[IntegrityError], policy: RecoveryPolicy) -> Optional[str]:
    if not policy.skip_corrupted_records or not record_errors:
        return None
    if any(not e.recoverable for e in record_errors):
        return "unrecoverable error"
    if not policy.auto_fix:
        return "errors left unfixed with auto-fix disabled"
    return None


def recover(employees: List[Employee], errors: List[IntegrityError],
            policy: RecoveryPolicy) -> RecoveryOutcome:
    """
    Apply policy-gated fixes.

    Args:
        employees: Cleaned, merged records from the aggregator
        errors: Aggregated errors (record_index ties them to records)
        policy: Recovery policy

    Returns:
        RecoveryOutcome; with ``auto_fix`` off the records are returned
        unchanged and the warnings are previews
    """
    policy = require_policy(policy)
    outcome = RecoveryOutcome(preview=not policy.auto_fix)

    errors_by_record: Dict[int, List[IntegrityError]] = {}
    for error in errors:
        if error.record_index is not None:
            errors_by_record.setdefault(error.record_index, []).append(error)

    placeholders = _PlaceholderNames(employees)

    for employee in employees:
        record_errors = errors_by_record.get(employee.source_index, [])

        reason = _skip_reason(record_errors, policy)
        if reason is None and any(e.type is ErrorType.CIRCULAR_REFERENCE for e in record_errors):
            reason = "duplicate identity resolved in favour of another record"
            # Auto-fix drops the loser unrepaired, so the skip is the only preview
            if not policy.auto_fix:
                outcome.warnings.append(_as_preview(_fix(
                    employee, WarningType.RECORD_SKIPPED, "Record skipped",
                    'record', employee.name, None, details=reason,
                )))
                outcome.data.append(employee)
                continue

        if reason is not None:
            outcome.records_skipped += 1
            outcome.warnings.append(_fix(
                employee, WarningType.RECORD_SKIPPED, "Record skipped",
                'record', employee.name or None, None, details=reason,
            ))
            continue

        if not policy.auto_fix:
            fixes = _repair(employee.copy(), policy, placeholders)
            outcome.warnings.extend(_as_preview(f) for f in fixes)
            outcome.data.append(employee)
            continue

        fixed = employee.copy()
        fixes = _repair(fixed, policy, placeholders)
        if fixes:
            outcome.records_fixed += 1
            outcome.warnings.extend(fixes)
        outcome.data.append(fixed)

    mode = "Previewed" if outcome.preview else "Recovered"
    logger.info(
        f"{mode} {len(outcome.data)} records: {outcome.records_fixed} fixed, "
        f"{outcome.records_skipped} skipped, {len(outcome.warnings)} warnings"
    )
    return outcome
