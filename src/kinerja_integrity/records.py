"""
kinerja_integrity/records.py - Record Validator

Validates one employee-like record and its nested competency entries:
1. Name presence and type (placeholder assigned later by recovery)
2. Descriptive metadata types
3. Performance sequence shape and size limit
4. Competency name sanitization and length rules
5. Score coercion and clamping to [0, 100]
6. Encoding anomaly detection on free-text fields

DESIGN: "Report Everything, Mutate Only Mechanically"
Validation never invents values. The cleaned record carries trimmed,
sanitized and clamped values; anything that needs a substitution
(placeholder names, zero scores, defaults) is left for the recovery
engine to decide under policy.

Author: Kinerja Dashboard Project
License: MIT
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple
import logging

import numpy as np

from .models import (
    METADATA_FIELDS, CompetencyScore, Employee, ErrorType, IntegrityError,
    IntegrityWarning, Severity, WarningType,
)
from .policy import (
    COMPETENCY_NAME_MAX_LENGTH, COMPETENCY_NAME_MIN_LENGTH, SCORE_MAX, SCORE_MIN,
    RecoveryPolicy, require_policy,
)

logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    """Findings for one record plus its cleaned form (None if not a record)."""
    index: int
    errors: List[IntegrityError] = field(default_factory=list)
    warnings: List[IntegrityWarning] = field(default_factory=list)
    cleaned: Optional[Employee] = None


# =============================================================================
# TEXT NORMALIZATION
# =============================================================================

_WHITESPACE = re.compile(r'\s+')
_DISALLOWED_NAME_CHARS = re.compile(r'[^\w\s-]|_')
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

ENCODING_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ('replacement character', re.compile('\ufffd')),
    ('control character', _CONTROL_CHARS),
    ('literal unicode escape', re.compile(r'\\u[0-9a-fA-F]{4}')),
    ('UTF-8 mojibake', re.compile('\u00e2\u20ac|\u00c3[\x80-\xbf]')),
)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def normalize_identity(text: str) -> str:
    """Case- and whitespace-insensitive key for names and competencies."""
    return collapse_whitespace(text).casefold()


def sanitize_competency_name(raw: str) -> str:
    """
    Keep letters, digits, spaces and hyphens; collapse whitespace.

    >>> sanitize_competency_name('  Kualitas   Kinerja!! ')
    'Kualitas Kinerja'
    """
    return collapse_whitespace(_DISALLOWED_NAME_CHARS.sub('', raw))


def competency_name_is_valid(name: str) -> bool:
    return COMPETENCY_NAME_MIN_LENGTH <= len(name) <= COMPETENCY_NAME_MAX_LENGTH


def detect_encoding_anomaly(text: str) -> Optional[str]:
    """Name of the first encoding anomaly found in ``text``, else None."""
    for label, pattern in ENCODING_PATTERNS:
        if pattern.search(text):
            return label
    return None


# =============================================================================
# SCORES
# =============================================================================

def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float, np.integer, np.floating))
            and not isinstance(value, (bool, np.bool_)))


def normalize_score(value: Any) -> float:
    """
    Coerce any value to a score in [0, 100].

    Non-numeric and non-finite values become 0.
    """
    if _is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return SCORE_MIN
    else:
        return SCORE_MIN
    if not np.isfinite(number):
        return SCORE_MIN
    return float(np.clip(number, SCORE_MIN, SCORE_MAX))


def _validate_score(entry: dict, index: int, position: int, employee_name: str,
                    competency: str, result: RecordResult) -> Optional[float]:
    field_name = f"performance[{position}].score"

    def corrupt(raw: Any, reason: str) -> None:
        result.errors.append(IntegrityError(
            type=ErrorType.DATA_CORRUPTION,
            message=f"Non-numeric score for '{competency}'",
            details=reason,
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name=field_name,
            original_value=raw,
        ))

    if 'score' not in entry or entry['score'] is None:
        result.errors.append(IntegrityError(
            type=ErrorType.SCHEMA_VIOLATION,
            message=f"Missing score for '{competency}'",
            details="Score is absent or null",
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name=field_name,
        ))
        return None

    raw = entry['score']
    if _is_number(raw):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            corrupt(raw, f"Score {raw!r} is not a number")
            return None
        if np.isfinite(number):
            result.warnings.append(IntegrityWarning(
                type=WarningType.TYPE_COERCED,
                message=f"Score for '{competency}' coerced from text",
                record_index=index,
                employee_name=employee_name,
                field_name=field_name,
                original_value=raw,
                new_value=number,
            ))
    else:
        corrupt(raw, f"Score has type {type(raw).__name__}")
        return None

    if not np.isfinite(number):
        corrupt(raw, "Score is not a finite number")
        return None

    clamped = float(np.clip(number, SCORE_MIN, SCORE_MAX))
    if clamped != number:
        result.warnings.append(IntegrityWarning(
            type=WarningType.SCORE_CLAMPED,
            message=f"Score for '{competency}' clamped to range",
            details=f"{number:g} outside [{SCORE_MIN:g}, {SCORE_MAX:g}]",
            record_index=index,
            employee_name=employee_name,
            field_name=field_name,
            original_value=raw,
            new_value=clamped,
        ))
    return clamped


# =============================================================================
# FIELD VALIDATORS
# =============================================================================

def _encoding_warning(text: str, field_name: str, index: int,
                      employee_name: Optional[str], result: RecordResult) -> None:
    anomaly = detect_encoding_anomaly(text)
    if anomaly:
        result.warnings.append(IntegrityWarning(
            type=WarningType.ENCODING_ISSUE,
            message="Potential encoding issue detected",
            details=f"{anomaly} in field '{field_name}'",
            record_index=index,
            employee_name=employee_name,
            field_name=field_name,
            original_value=text,
        ))


def _validate_name(record: dict, index: int, result: RecordResult) -> str:
    raw = record.get('name')
    if raw is None and 'nama' in record:
        raw = record.get('nama')

    if raw is not None and not isinstance(raw, str):
        if _is_number(raw):
            coerced = str(raw)
            result.warnings.append(IntegrityWarning(
                type=WarningType.TYPE_COERCED,
                message="Employee name coerced to text",
                record_index=index,
                field_name='name',
                original_value=raw,
                new_value=coerced,
            ))
            raw = coerced
        else:
            raw = None

    if raw is not None:
        _encoding_warning(raw, 'name', index, raw.strip() or None, result)
        name = collapse_whitespace(_CONTROL_CHARS.sub('', raw))
        if name and name != raw:
            result.warnings.append(IntegrityWarning(
                type=WarningType.NAME_SANITIZED,
                message="Employee name trimmed",
                record_index=index,
                employee_name=name,
                field_name='name',
                original_value=raw,
                new_value=name,
            ))
        if name:
            return name

    result.errors.append(IntegrityError(
        type=ErrorType.SCHEMA_VIOLATION,
        message="Missing or invalid employee name",
        details=f"Record at index {index} has no usable name",
        severity=Severity.HIGH,
        recoverable=True,
        record_index=index,
        field_name='name',
        original_value=record.get('name'),
    ))
    return ""


def _validate_metadata(record: dict, index: int, employee_name: str,
                       result: RecordResult) -> dict:
    values = {}
    for meta in ('id',) + METADATA_FIELDS:
        raw = record.get(meta)
        if raw is None:
            values[meta] = None
        elif isinstance(raw, str):
            values[meta] = raw.strip()
            _encoding_warning(raw, meta, index, employee_name, result)
        elif _is_number(raw):
            values[meta] = str(raw)
            if meta != 'id':
                result.warnings.append(IntegrityWarning(
                    type=WarningType.TYPE_COERCED,
                    message=f"Field '{meta}' coerced to text",
                    record_index=index,
                    employee_name=employee_name,
                    field_name=meta,
                    original_value=raw,
                    new_value=values[meta],
                ))
        else:
            values[meta] = None
            result.errors.append(IntegrityError(
                type=ErrorType.SCHEMA_VIOLATION,
                message=f"Field '{meta}' has unsupported type",
                details=f"Expected text, got {type(raw).__name__}; value discarded",
                severity=Severity.LOW,
                recoverable=True,
                record_index=index,
                employee_name=employee_name,
                field_name=meta,
                original_value=raw,
            ))
    return values


def _validate_competency(entry: Any, position: int, index: int, employee_name: str,
                         result: RecordResult) -> CompetencyScore:
    field_name = f"performance[{position}]"

    if not isinstance(entry, dict):
        result.errors.append(IntegrityError(
            type=ErrorType.SCHEMA_VIOLATION,
            message="Performance entry is not an object",
            details=f"Entry {position} has type {type(entry).__name__}",
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name=field_name,
            original_value=entry,
        ))
        return CompetencyScore(name="", score=None)

    raw_name = entry.get('name')
    if _is_number(raw_name):
        coerced = str(raw_name)
        result.warnings.append(IntegrityWarning(
            type=WarningType.TYPE_COERCED,
            message="Competency name coerced to text",
            record_index=index,
            employee_name=employee_name,
            field_name=f"{field_name}.name",
            original_value=raw_name,
            new_value=coerced,
        ))
        raw_name = coerced

    if isinstance(raw_name, str):
        _encoding_warning(raw_name, f"{field_name}.name", index, employee_name, result)
        name = sanitize_competency_name(raw_name)
        if name != raw_name:
            result.warnings.append(IntegrityWarning(
                type=WarningType.COMPETENCY_SANITIZED,
                message="Competency name sanitized",
                record_index=index,
                employee_name=employee_name,
                field_name=f"{field_name}.name",
                original_value=raw_name,
                new_value=name,
            ))
    else:
        name = ""

    if not competency_name_is_valid(name):
        result.errors.append(IntegrityError(
            type=ErrorType.INVALID_COMPETENCY_NAME,
            message="Invalid competency name",
            details=(f"Length {len(name)} outside "
                     f"[{COMPETENCY_NAME_MIN_LENGTH}, {COMPETENCY_NAME_MAX_LENGTH}] "
                     f"after sanitization"),
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name=f"{field_name}.name",
            original_value=raw_name,
        ))

    score = _validate_score(entry, index, position, employee_name, name or field_name, result)
    return CompetencyScore(name=name, score=score)


def _validate_performance(record: dict, index: int, employee_name: str,
                          policy: RecoveryPolicy, result: RecordResult) -> List[CompetencyScore]:
    raw = record.get('performance')

    if raw is None or (isinstance(raw, list) and not raw):
        result.warnings.append(IntegrityWarning(
            type=WarningType.MISSING_PERFORMANCE,
            message="No performance data",
            details="Performance is missing or empty",
            record_index=index,
            employee_name=employee_name,
            field_name='performance',
        ))
        return []

    if not isinstance(raw, list):
        result.errors.append(IntegrityError(
            type=ErrorType.SCHEMA_VIOLATION,
            message="Performance is not a list",
            details=f"Expected list, got {type(raw).__name__}",
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name='performance',
            original_value=raw,
        ))
        return []

    limit = policy.max_performance_entries
    if len(raw) > limit:
        result.errors.append(IntegrityError(
            type=ErrorType.ARRAY_SIZE_EXCEEDED,
            message="Too many performance entries",
            details=f"{len(raw)} entries, limit {limit}; entries beyond {limit} are truncated",
            severity=Severity.MEDIUM,
            recoverable=True,
            record_index=index,
            employee_name=employee_name,
            field_name='performance',
            original_value=len(raw),
        ))

    return [
        _validate_competency(entry, position, index, employee_name, result)
        for position, entry in enumerate(raw)
    ]


# =============================================================================
# RECORD VALIDATION
# =============================================================================

def validate_record(record: Any, index: int, policy: RecoveryPolicy) -> RecordResult:
    """
    Validate one record.

    Args:
        record: Element of the parsed payload
        index: Position of the element in the payload
        policy: Recovery policy (size limits)

    Returns:
        RecordResult with errors, warnings and the cleaned Employee;
        ``cleaned`` is None when the element is not a map
    """
    policy = require_policy(policy)
    result = RecordResult(index=index)

    if not isinstance(record, dict):
        result.errors.append(IntegrityError(
            type=ErrorType.SCHEMA_VIOLATION,
            message="Employee record is not an object",
            details=f"Record at index {index} is {type(record).__name__}",
            severity=Severity.HIGH,
            recoverable=False,
            record_index=index,
            original_value=record,
        ))
        return result

    name = _validate_name(record, index, result)
    metadata = _validate_metadata(record, index, name, result)
    performance = _validate_performance(record, index, name, policy, result)

    result.cleaned = Employee(
        name=name,
        performance=performance,
        source_index=index,
        **metadata,
    )
    return result
