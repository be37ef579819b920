"""
kinerja_integrity/aggregator.py - Integrity Aggregator

Assembles the facts the scorer and recovery engine work from:
1. Structural + per-record findings, with record-index provenance
2. Parse-strategy provenance (repaired or reconstructed payloads)
3. Competency merge within each employee (policy-selected rule)
4. Cross-record duplicate identities (policy-selected winner)
5. Dataset-level score distribution concerns

This stage does not decide pass/fail.

Author: Kinerja Dashboard Project
License: MIT
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from .models import (
    CompetencyScore, Employee, ErrorType, IntegrityError, IntegrityWarning,
    ParseStrategy, Severity, WarningType,
)
from .policy import CompetencyMergePolicy, IdentityResolution, RecoveryPolicy, require_policy
from .records import RecordResult, competency_name_is_valid, normalize_identity
from .structure import StructuralResult

logger = logging.getLogger(__name__)

IDENTICAL_SCORES_MIN_EMPLOYEES = 5
LOW_VARIANCE_MIN_EMPLOYEES = 10
LOW_VARIANCE_STD = 5.0
OUTLIER_SIGMA = 2.0


@dataclass
class AggregateResult:
    """Unified findings and the cleaned, merged records."""
    errors: List[IntegrityError] = field(default_factory=list)
    warnings: List[IntegrityWarning] = field(default_factory=list)
    employees: List[Employee] = field(default_factory=list)
    total_records: int = 0
    fatal: bool = False
    parse_strategy: Optional[ParseStrategy] = None

    @property
    def has_corruption(self) -> bool:
        return any(
            e.type in (ErrorType.DATA_CORRUPTION, ErrorType.CRITICAL_DATA_LOSS)
            for e in self.errors
        )


@dataclass
class CompetencyStats:
    """Score distribution of one competency across the dataset."""
    name: str
    count: int
    mean: float
    std: float
    minimum: float
    maximum: float
    outliers: List[float] = field(default_factory=list)


# =============================================================================
# COMPETENCY MERGE
# =============================================================================

def _fmt_score(score: Optional[float]) -> str:
    return 'null' if score is None else f"{score:g}"


def _merged_score(group: List[CompetencyScore], rule: CompetencyMergePolicy) -> Optional[float]:
    if rule is CompetencyMergePolicy.KEEP_FIRST:
        return group[0].score
    if rule is CompetencyMergePolicy.KEEP_LAST:
        return group[-1].score
    scores = [c.score for c in group if c.score is not None]
    if not scores:
        return None
    return round(float(np.mean(scores)), 2)


def merge_competencies(employee: Employee, rule: CompetencyMergePolicy
                       ) -> Tuple[List[CompetencyScore], List[IntegrityWarning]]:
    """
    Collapse near-duplicate competency entries of one employee.

    Entries are grouped by case/whitespace-normalized name. The merged entry
    keeps the position and spelling of the first occurrence; its score
    follows ``rule``. Entries with invalid names are left untouched.
    """
    groups: Dict[str, List[CompetencyScore]] = {}
    order: List[object] = []
    for entry in employee.performance:
        if not competency_name_is_valid(entry.name):
            order.append(entry)
            continue
        key = normalize_identity(entry.name)
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(entry)

    merged: List[CompetencyScore] = []
    warnings: List[IntegrityWarning] = []
    for item in order:
        if isinstance(item, CompetencyScore):
            merged.append(item)
            continue
        group = groups[item]
        if len(group) == 1:
            merged.append(group[0])
            continue

        kept = CompetencyScore(name=group[0].name, score=_merged_score(group, rule))
        merged.append(kept)
        discarded = ', '.join(f"'{c.name}'" for c in group[1:])
        warnings.append(IntegrityWarning(
            type=WarningType.COMPETENCY_MERGED,
            message=f"Duplicate competency '{kept.name}' merged",
            details=(f"Discarded {discarded}; scores "
                     f"{', '.join(_fmt_score(c.score) for c in group)}; "
                     f"kept {_fmt_score(kept.score)} ({rule.value})"),
            record_index=employee.source_index,
            employee_name=employee.name or None,
            field_name='performance',
            original_value=[c.score for c in group],
            new_value=kept.score,
        ))
    return merged, warnings


# =============================================================================
# DUPLICATE IDENTITIES
# =============================================================================

def _same_identity(a: Employee, b: Employee) -> bool:
    if a.id and b.id:
        return a.id == b.id
    return bool(a.name) and normalize_identity(a.name) == normalize_identity(b.name)


def find_duplicate_identities(employees: List[Employee],
                              resolution: IdentityResolution) -> List[IntegrityError]:
    """
    Flag records that resolve to an identity already seen.

    Records match on external id when both carry one, otherwise on
    normalized name. The error is attached to the record that loses
    under ``resolution``.
    """
    errors: List[IntegrityError] = []
    survivors: List[Employee] = []

    for employee in employees:
        match = next((s for s in survivors if _same_identity(s, employee)), None)
        if match is None:
            survivors.append(employee)
            continue

        if resolution is IdentityResolution.LAST_WRITE_WINS:
            loser, winner = match, employee
            survivors[survivors.index(match)] = employee
        else:
            loser, winner = employee, match

        key = f"id '{loser.id}'" if loser.id and winner.id else f"name '{loser.name}'"
        errors.append(IntegrityError(
            type=ErrorType.CIRCULAR_REFERENCE,
            message="Duplicate employee identity",
            details=(f"Record {loser.source_index} shares {key} with record "
                     f"{winner.source_index}; record {winner.source_index} kept "
                     f"({resolution.value})"),
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=loser.source_index,
            employee_name=loser.name or None,
            field_name='id' if loser.id and winner.id else 'name',
            original_value=loser.id if loser.id and winner.id else loser.name,
        ))
    return errors


# =============================================================================
# SCORE DISTRIBUTION
# =============================================================================

def score_statistics(employees: List[Employee]) -> Dict[str, CompetencyStats]:
    """Per-competency score distribution (population std)."""
    grouped: Dict[str, Tuple[str, List[float]]] = {}
    for employee in employees:
        for entry in employee.performance:
            if entry.score is None or not competency_name_is_valid(entry.name):
                continue
            key = normalize_identity(entry.name)
            grouped.setdefault(key, (entry.name, []))[1].append(entry.score)

    stats: Dict[str, CompetencyStats] = {}
    for key, (name, values) in grouped.items():
        scores = np.asarray(values, dtype=float)
        mean = float(scores.mean())
        std = float(scores.std())
        outliers = sorted({float(s) for s in scores[np.abs(scores - mean) > OUTLIER_SIGMA * std]}) \
            if std > 0 else []
        stats[key] = CompetencyStats(
            name=name,
            count=int(scores.size),
            mean=mean,
            std=std,
            minimum=float(scores.min()),
            maximum=float(scores.max()),
            outliers=outliers,
        )
    return stats


def quality_concerns(employees: List[Employee]) -> List[IntegrityWarning]:
    warnings: List[IntegrityWarning] = []
    for stats in score_statistics(employees).values():
        if stats.count >= IDENTICAL_SCORES_MIN_EMPLOYEES and stats.std == 0:
            warnings.append(IntegrityWarning(
                type=WarningType.QUALITY_CONCERN,
                message="All employees have identical scores for competency",
                details=f"'{stats.name}': {stats.count} employees scored {stats.mean:g}",
                field_name=stats.name,
            ))
            continue
        if stats.count > LOW_VARIANCE_MIN_EMPLOYEES and stats.std < LOW_VARIANCE_STD:
            warnings.append(IntegrityWarning(
                type=WarningType.QUALITY_CONCERN,
                message="Very low score variance for competency",
                details=f"'{stats.name}': standard deviation {stats.std:.2f}",
                field_name=stats.name,
            ))
        if stats.outliers:
            warnings.append(IntegrityWarning(
                type=WarningType.QUALITY_CONCERN,
                message="Score outliers detected",
                details=(f"'{stats.name}': outlier values "
                         f"{', '.join(f'{v:g}' for v in stats.outliers)}"),
                field_name=stats.name,
            ))
    return warnings


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate(structural: StructuralResult, record_results: List[RecordResult],
              policy: RecoveryPolicy,
              parse_strategy: Optional[ParseStrategy] = None,
              truncated_records: Sequence[int] = ()) -> AggregateResult:
    """
    Merge structural and per-record findings into one result.

    Cleaned employees are normalized in place: competency merge is always
    applied and reported. Duplicate identities are only flagged here; the
    recovery engine decides what happens to the losing record.
    """
    policy = require_policy(policy)
    result = AggregateResult(
        errors=list(structural.errors),
        warnings=list(structural.warnings),
        total_records=len(structural.records) if structural.records else 0,
        fatal=structural.fatal,
        parse_strategy=parse_strategy,
    )

    if parse_strategy is ParseStrategy.SYNTAX_REPAIR:
        result.warnings.append(IntegrityWarning(
            type=WarningType.FORMAT_ANOMALY,
            message="Payload required syntax repair",
            details="Decoded after quoting keys, dropping trailing commas or normalizing literals",
        ))
    elif parse_strategy is ParseStrategy.REGEX_FALLBACK:
        result.errors.append(IntegrityError(
            type=ErrorType.DATA_CORRUPTION,
            message="Payload reconstructed from field patterns",
            details="Only employee names and competency name/score pairs were recovered",
            severity=Severity.MEDIUM,
            recoverable=True,
        ))

    for index in truncated_records:
        result.errors.append(IntegrityError(
            type=ErrorType.DATA_CORRUPTION,
            message="Record cut off before its end",
            details="Fields after the cut were lost; a score running into end of input is discarded",
            severity=Severity.HIGH,
            recoverable=False,
            record_index=index,
            field_name='performance',
        ))

    for record_result in sorted(record_results, key=lambda r: r.index):
        result.errors.extend(record_result.errors)
        result.warnings.extend(record_result.warnings)
        employee = record_result.cleaned
        if employee is None:
            continue
        employee.performance, merge_warnings = merge_competencies(
            employee, policy.competency_merge
        )
        result.warnings.extend(merge_warnings)
        result.employees.append(employee)

    result.errors.extend(find_duplicate_identities(result.employees, policy.identity_resolution))
    result.warnings.extend(quality_concerns(result.employees))

    logger.info(
        f"Aggregated {result.total_records} records: "
        f"{len(result.errors)} errors, {len(result.warnings)} warnings"
    )
    return result
