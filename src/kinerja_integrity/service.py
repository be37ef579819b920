"""
kinerja_integrity/service.py - Integrity Pipeline Orchestration

Runs the stages in order for validation-only and full process calls:

    raw payload -> decode -> parse cascade -> structural validator
        -> record validator -> aggregator -> recovery engine
        -> scorer -> storage sink (optional)

Parse-cascade exhaustion and fatal structural violations stop the
pipeline with no records. Record-level problems never abort the batch.
Storage failures roll the whole batch back and are reported apart from
integrity errors.

Author: Kinerja Dashboard Project
License: MIT
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from .aggregator import AggregateResult, aggregate
from .ingestion import decode_payload
from .models import (
    DatabaseOperationResult, DataIntegrityResult, ErrorType, IntegrityError,
    IntegrityWarning, OperationMetadata, ParseStrategy, RecoveryOptionType, Severity,
)
from .parser import parse
from .policy import RecoveryPolicy, require_policy
from .records import validate_record
from .recovery import recover
from .scoring import data_quality_level, fatal_summary, generate_recovery_options, score
from .storage import StorageError, StorageSink
from .structure import validate_structure

logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    """Validation outcome plus the aggregated records recovery works on."""
    result: DataIntegrityResult
    aggregate: Optional[AggregateResult] = None


@dataclass
class UserRecoveryGuidance:
    """What the caller should tell a human operator."""
    can_proceed: bool
    requires_user_action: bool
    recommendations: List[str] = field(default_factory=list)
    actions: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'canProceed': self.can_proceed,
            'requiresUserAction': self.requires_user_action,
            'recommendations': list(self.recommendations),
            'actions': [dict(a) for a in self.actions],
        }


# =============================================================================
# VALIDATION
# =============================================================================

def _fatal_run(errors: List[IntegrityError], warnings: List[IntegrityWarning],
               parse_strategy: Optional[ParseStrategy], parse_errors: List[str]) -> PipelineRun:
    result = DataIntegrityResult(
        is_valid=False,
        has_corruption=any(
            e.type in (ErrorType.DATA_CORRUPTION, ErrorType.CRITICAL_DATA_LOSS) for e in errors
        ),
        errors=errors,
        warnings=warnings,
        recovery_options=generate_recovery_options(errors, parse_strategy),
        summary=fatal_summary(),
        fatal=True,
        parse_strategy=parse_strategy,
        parse_errors=parse_errors,
    )
    return PipelineRun(result=result)


def _validate_parsed(parsed: Any, policy: RecoveryPolicy,
                     parse_strategy: Optional[ParseStrategy],
                     parse_errors: List[str],
                     boundary_errors: List[IntegrityError],
                     truncated_records: Sequence[int] = ()) -> PipelineRun:
    structural = validate_structure(parsed)
    structural.errors[:0] = boundary_errors
    if structural.fatal:
        return _fatal_run(structural.errors, structural.warnings, parse_strategy, parse_errors)

    record_results = [
        validate_record(structural.records[index], index, policy)
        for index in structural.record_indices
    ]
    aggregated = aggregate(structural, record_results, policy, parse_strategy, truncated_records)
    summary = score(aggregated.errors, aggregated.warnings, aggregated.total_records)

    result = DataIntegrityResult(
        is_valid=not aggregated.errors,
        has_corruption=aggregated.has_corruption,
        errors=aggregated.errors,
        warnings=aggregated.warnings,
        recovery_options=generate_recovery_options(aggregated.errors, parse_strategy),
        summary=summary,
        parse_strategy=parse_strategy,
        parse_errors=parse_errors,
    )
    logger.info(
        f"Validation complete: score {summary.integrity_score}, "
        f"action {summary.recommended_action.value}"
    )
    return PipelineRun(result=result, aggregate=aggregated)


def _validate_raw(raw: Union[str, bytes], policy: RecoveryPolicy) -> PipelineRun:
    boundary_errors: List[IntegrityError] = []
    if isinstance(raw, (bytes, bytearray)):
        raw, boundary_errors = decode_payload(bytes(raw))

    outcome = parse(raw, policy.max_recovery_attempts, policy.max_payload_bytes)
    if not outcome.ok:
        errors = boundary_errors + [IntegrityError(
            type=ErrorType.JSON_PARSE_ERROR,
            message="Unable to parse payload",
            details='; '.join(outcome.errors_per_attempt),
            severity=Severity.CRITICAL,
            recoverable=False,
            field_name='payload',
        )]
        return _fatal_run(errors, [], None, outcome.errors_per_attempt)

    return _validate_parsed(
        outcome.payload, policy, outcome.strategy, outcome.errors_per_attempt, boundary_errors,
        outcome.truncated_records,
    )


def validate_json_integrity(raw_text: Union[str, bytes],
                            policy: RecoveryPolicy) -> DataIntegrityResult:
    """
    Validate a raw upload without recovering or storing anything.

    Args:
        raw_text: Uploaded payload (text, or bytes decoded as UTF-8)
        policy: Recovery policy (parse attempts, size limits)

    Returns:
        DataIntegrityResult
    """
    return _validate_raw(raw_text, require_policy(policy)).result


def validate_employee_records(records: Any, policy: RecoveryPolicy) -> DataIntegrityResult:
    """Validate an already-parsed record list (e.g. from a CSV sheet)."""
    return _validate_parsed(records, require_policy(policy), ParseStrategy.PRE_PARSED, [], []).result


# =============================================================================
# PROCESSING
# =============================================================================

def format_error(error: IntegrityError) -> str:
    location = f" (record {error.record_index})" if error.record_index is not None else ""
    return f"[{error.severity.value}] {error.type.value}: {error.message}{location}"


def format_warning(warning: IntegrityWarning) -> str:
    location = f" (record {warning.record_index})" if warning.record_index is not None else ""
    return f"{warning.type.value}: {warning.message}{location}"


def _store(sink: StorageSink, employees, session_id: str) -> List[str]:
    try:
        with sink.transaction():
            for employee in employees:
                employee_id = sink.upsert_employee(employee)
                sink.insert_performance_scores(employee_id, session_id, employee.performance)
    except StorageError as exc:
        logger.warning(f"Storage failed, batch rolled back: {exc}")
        return [f"storage_error: {exc}"]
    logger.info(f"Stored {len(employees)} employees in session {session_id}")
    return []


def _process(run: PipelineRun, policy: RecoveryPolicy, operation: str,
             sink: Optional[StorageSink], session_id: Optional[str]) -> DatabaseOperationResult:
    result = run.result
    timestamp = datetime.now().isoformat()
    errors = [format_error(e) for e in result.errors]
    warnings = [format_warning(w) for w in result.warnings]

    if result.fatal:
        logger.warning(f"{operation}: payload unusable, nothing processed")
        return DatabaseOperationResult(
            success=False,
            data=None,
            errors=errors,
            warnings=warnings,
            recovery_options=result.recovery_options,
            metadata=OperationMetadata(operation, timestamp, 0, 0, 0),
            integrity_result=result,
        )

    outcome = recover(run.aggregate.employees, run.aggregate.errors, policy)
    warnings.extend(format_warning(w) for w in outcome.warnings)

    accepted = policy.auto_fix or result.is_valid
    storage_errors: List[str] = []
    if sink is not None and accepted and outcome.data:
        storage_errors = _store(sink, outcome.data, session_id or uuid.uuid4().hex)

    return DatabaseOperationResult(
        success=accepted and not storage_errors,
        data=outcome.data,
        errors=errors,
        warnings=warnings,
        recovery_options=result.recovery_options,
        metadata=OperationMetadata(
            operation=operation,
            timestamp=timestamp,
            records_processed=len(outcome.data),
            records_recovered=outcome.records_fixed,
            data_quality_score=result.summary.integrity_score,
        ),
        integrity_result=result,
        storage_errors=storage_errors,
        records_skipped=outcome.records_skipped,
    )


def process_performance_data(raw: Union[str, bytes], policy: RecoveryPolicy,
                             sink: Optional[StorageSink] = None,
                             session_id: Optional[str] = None) -> DatabaseOperationResult:
    """
    Validate, recover and optionally store a raw upload.

    Args:
        raw: Uploaded payload (text, or bytes decoded as UTF-8)
        policy: Recovery policy for every stage
        sink: Storage target; nothing is written when omitted
        session_id: Upload session the scores are stored under

    Returns:
        DatabaseOperationResult; ``data`` is None when the payload could
        not be turned into records
    """
    policy = require_policy(policy)
    return _process(_validate_raw(raw, policy), policy, 'process_performance_data',
                    sink, session_id)


def process_employee_records(records: Any, policy: RecoveryPolicy,
                             sink: Optional[StorageSink] = None,
                             session_id: Optional[str] = None) -> DatabaseOperationResult:
    policy = require_policy(policy)
    run = _validate_parsed(records, policy, ParseStrategy.PRE_PARSED, [], [])
    return _process(run, policy, 'process_employee_records', sink, session_id)


# =============================================================================
# USER GUIDANCE
# =============================================================================

QUALITY_RECOMMENDATIONS = {
    'excellent': "Data quality is excellent. Safe to proceed.",
    'good': "Data quality is acceptable with minor issues.",
    'fair': "Data quality has significant issues. Review recommended.",
    'poor': "Data quality is poor. Manual intervention required.",
}

PROCEED_MIN_SCORE = 70


def get_recovery_options_for_user(op_result: DatabaseOperationResult) -> UserRecoveryGuidance:
    """Summarize a process result into operator-facing guidance."""
    quality = op_result.metadata.data_quality_score
    requires_user_action = any(
        o.type in (RecoveryOptionType.USER_INPUT_REQUIRED, RecoveryOptionType.MANUAL_REVIEW)
        for o in op_result.recovery_options
    )
    recommendations = [QUALITY_RECOMMENDATIONS[data_quality_level(quality)]]
    if op_result.storage_errors:
        recommendations.append("Storage failed; no records were saved. Retry the upload.")

    return UserRecoveryGuidance(
        can_proceed=(not op_result.storage_errors
                     and (op_result.success or quality >= PROCEED_MIN_SCORE)),
        requires_user_action=requires_user_action,
        recommendations=recommendations,
        actions=[
            {'label': o.description, 'action': o.action, 'risk': o.risk_level.value}
            for o in op_result.recovery_options
        ],
    )
