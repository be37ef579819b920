"""
kinerja_integrity/scoring.py - Quality Scorer

Turns findings into a verdict:
1. Integrity score: 100 minus severity-weighted error penalties and a
   capped flat warning penalty, floored at 0
2. Corruption counts and data-loss percentage
3. Recommended action from the ACTION_THRESHOLDS table
4. Ranked recovery options with confidence and risk
5. Human-readable messages for the calling layer

Author: Kinerja Dashboard Project
License: MIT
"""

from typing import Dict, Iterable, List, Optional, Set
import logging

from .models import (
    Confidence, DataIntegrityResult, ErrorType, IntegrityError, IntegritySummary,
    IntegrityWarning, ParseStrategy, RecommendedAction, RecoveryOption,
    RecoveryOptionType, RiskLevel, Severity,
)
from .policy import (
    ACTION_THRESHOLDS, QUALITY_LEVELS, SEVERITY_PENALTIES, WARNING_PENALTY,
    WARNING_PENALTY_CAP,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SCORE
# =============================================================================

def integrity_score(errors: List[IntegrityError], warnings: List[IntegrityWarning]) -> int:
    error_penalty = sum(SEVERITY_PENALTIES[e.severity] for e in errors)
    warning_penalty = min(len(warnings) * WARNING_PENALTY, WARNING_PENALTY_CAP)
    return max(0, 100 - error_penalty - warning_penalty)


def recommended_action(score: int) -> RecommendedAction:
    for minimum, action in ACTION_THRESHOLDS:
        if score >= minimum:
            return action
    return RecommendedAction.ABORT


def data_quality_level(score: int) -> str:
    """excellent / good / fair / poor, on the same cut points as the action ladder."""
    for minimum, level in QUALITY_LEVELS:
        if score >= minimum:
            return level
    return QUALITY_LEVELS[-1][1]


def score(errors: List[IntegrityError], warnings: List[IntegrityWarning],
          total_records: int) -> IntegritySummary:
    """
    Compute the integrity summary.

    A record counts as corrupted when any error points at its index, and
    as recoverable when every such error is recoverable.
    """
    by_record: Dict[int, List[IntegrityError]] = {}
    for error in errors:
        if error.record_index is not None:
            by_record.setdefault(error.record_index, []).append(error)

    corrupted = len(by_record)
    recoverable = sum(
        1 for record_errors in by_record.values()
        if all(e.recoverable for e in record_errors)
    )
    data_loss = round(corrupted / total_records * 100, 2) if total_records > 0 else 0.0
    value = integrity_score(errors, warnings)

    return IntegritySummary(
        total_records=total_records,
        corrupted_records=corrupted,
        recoverable_records=recoverable,
        data_loss_percentage=data_loss,
        integrity_score=value,
        recommended_action=recommended_action(value),
    )


def fatal_summary() -> IntegritySummary:
    """Summary for a payload that produced no usable record list."""
    return IntegritySummary(
        total_records=0,
        corrupted_records=0,
        recoverable_records=0,
        data_loss_percentage=0.0,
        integrity_score=0,
        recommended_action=RecommendedAction.ABORT,
    )


# =============================================================================
# RECOVERY OPTIONS
# =============================================================================

def _fields(errors: Iterable[IntegrityError]) -> List[str]:
    seen: Set[str] = set()
    fields: List[str] = []
    for error in errors:
        name = error.field_name or 'unknown'
        if name not in seen:
            seen.add(name)
            fields.append(name)
    return fields


def generate_recovery_options(errors: List[IntegrityError],
                              parse_strategy: Optional[ParseStrategy] = None
                              ) -> List[RecoveryOption]:
    """
    Propose remediations, always in the order auto_fix, manual_review,
    fallback_values, data_restoration, user_input_required.
    """
    options: List[RecoveryOption] = []

    recoverable = [e for e in errors if e.recoverable]
    if recoverable:
        options.append(RecoveryOption(
            type=RecoveryOptionType.AUTO_FIX,
            description="Automatically fix recoverable data issues",
            action="Apply default values and data normalization",
            confidence=Confidence.HIGH,
            risk_level=RiskLevel.SAFE,
            affected_fields=_fields(recoverable),
        ))

    critical = [e for e in errors if e.severity is Severity.CRITICAL]
    if critical:
        options.append(RecoveryOption(
            type=RecoveryOptionType.MANUAL_REVIEW,
            description="Critical issues require manual review",
            action="Review and manually correct data before proceeding",
            confidence=Confidence.HIGH,
            risk_level=RiskLevel.MODERATE,
            affected_fields=_fields(critical),
        ))

    missing = [e for e in errors if e.type is ErrorType.SCHEMA_VIOLATION and e.field_name
               and e.recoverable]
    if missing:
        options.append(RecoveryOption(
            type=RecoveryOptionType.FALLBACK_VALUES,
            description="Use default values for missing fields",
            action="Apply system defaults for missing required fields",
            confidence=Confidence.MEDIUM,
            risk_level=RiskLevel.SAFE,
            affected_fields=_fields(missing),
        ))

    lost = [e for e in errors
            if e.type in (ErrorType.CRITICAL_DATA_LOSS, ErrorType.JSON_PARSE_ERROR)]
    if lost or parse_strategy is ParseStrategy.REGEX_FALLBACK:
        options.append(RecoveryOption(
            type=RecoveryOptionType.DATA_RESTORATION,
            description="Restore data from the original source",
            action="Re-export the upload from its source system or a backup",
            confidence=Confidence.MEDIUM,
            risk_level=RiskLevel.RISKY if lost else RiskLevel.MODERATE,
            affected_fields=_fields(lost) or ['payload'],
        ))

    unrecoverable = [e for e in errors if not e.recoverable]
    if unrecoverable:
        options.append(RecoveryOption(
            type=RecoveryOptionType.USER_INPUT_REQUIRED,
            description="Some issues require user input to resolve",
            action="Prompt user for missing or corrupted data",
            confidence=Confidence.LOW,
            risk_level=RiskLevel.MODERATE,
            affected_fields=_fields(unrecoverable),
        ))

    return options


# =============================================================================
# MESSAGES
# =============================================================================

RECOVERY_RECOMMENDATIONS = {
    RecommendedAction.PROCEED:
        "Data quality is acceptable. You can proceed with processing.",
    RecommendedAction.REVIEW_REQUIRED:
        "Data has some issues but is mostly intact. Review warnings before proceeding.",
    RecommendedAction.MANUAL_INTERVENTION:
        "Significant data issues detected. Manual intervention recommended before proceeding.",
    RecommendedAction.ABORT:
        "Critical data integrity issues detected. Processing should be aborted until issues are resolved.",
}


def recovery_recommendation(action: RecommendedAction) -> str:
    return RECOVERY_RECOMMENDATIONS[RecommendedAction(action)]


def integrity_message(result: DataIntegrityResult) -> str:
    if result.is_valid:
        return "Data integrity validation passed successfully"

    total = len(result.errors)
    critical = sum(1 for e in result.errors if e.severity is Severity.CRITICAL)
    high = sum(1 for e in result.errors if e.severity is Severity.HIGH)
    if critical:
        return f"Critical data integrity issues detected ({critical} critical, {total} total errors)"
    if high:
        return f"Significant data integrity issues detected ({high} high priority, {total} total errors)"
    return f"Minor data integrity issues detected ({total} errors)"
