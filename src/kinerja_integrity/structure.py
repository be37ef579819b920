"""
kinerja_integrity/structure.py - Structural Validator

Checks the parsed payload shape independent of business semantics:
1. Payload is non-null
2. Payload is a sequence; a lone record is flagged and wrapped, an
   envelope such as {"employees": [...]} is unwrapped
3. Sequence is non-empty (empty is a warning, not an error)
4. Every element is a record (map); bad elements are per-element errors

Author: Kinerja Dashboard Project
License: MIT
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from .models import ErrorType, IntegrityError, IntegrityWarning, Severity, WarningType

logger = logging.getLogger(__name__)

ENVELOPE_KEYS = ('employees', 'data', 'records')
RECORD_HINT_KEYS = ('name', 'nama', 'performance', 'nip')


@dataclass
class StructuralResult:
    """Findings of the structural pass plus the record list to validate."""
    errors: List[IntegrityError] = field(default_factory=list)
    warnings: List[IntegrityWarning] = field(default_factory=list)
    records: Optional[List[Any]] = None
    record_indices: List[int] = field(default_factory=list)
    fatal: bool = False
    coerced: bool = False


def _looks_like_record(payload: Dict[str, Any]) -> bool:
    return any(key in payload for key in RECORD_HINT_KEYS)


def _fatal(result: StructuralResult, error: IntegrityError) -> StructuralResult:
    result.errors.append(error)
    result.fatal = True
    result.records = None
    logger.warning(f"Fatal structural violation: {error.message}")
    return result


def validate_structure(parsed: Any) -> StructuralResult:
    """
    Validate the top-level payload shape.

    Returns:
        StructuralResult; ``fatal`` is True when no record list can be
        derived, in which case ``records`` is None
    """
    result = StructuralResult()

    if parsed is None:
        return _fatal(result, IntegrityError(
            type=ErrorType.CRITICAL_DATA_LOSS,
            message="Payload is null",
            details="Complete data loss detected",
            severity=Severity.CRITICAL,
            recoverable=False,
        ))

    if isinstance(parsed, dict):
        envelope_key = next(
            (key for key in ENVELOPE_KEYS if isinstance(parsed.get(key), list)), None
        )
        if envelope_key is not None:
            result.warnings.append(IntegrityWarning(
                type=WarningType.FORMAT_ANOMALY,
                message=f"Records unwrapped from '{envelope_key}' envelope",
                details=f"Top-level object holds the record list under '{envelope_key}'",
                field_name=envelope_key,
            ))
            records = parsed[envelope_key]
        elif _looks_like_record(parsed):
            result.errors.append(IntegrityError(
                type=ErrorType.SCHEMA_VIOLATION,
                message="Payload is a single record, not a list",
                details="Lone record object wrapped into a one-element list",
                severity=Severity.HIGH,
                recoverable=True,
                record_index=0,
                field_name='payload',
            ))
            records = [parsed]
            result.coerced = True
        else:
            return _fatal(result, IntegrityError(
                type=ErrorType.SCHEMA_VIOLATION,
                message="Payload is an object without employee records",
                details=f"Keys found: {', '.join(sorted(map(str, parsed.keys()))[:10]) or 'none'}",
                severity=Severity.CRITICAL,
                recoverable=False,
                field_name='payload',
            ))
    elif isinstance(parsed, list):
        records = parsed
    else:
        return _fatal(result, IntegrityError(
            type=ErrorType.SCHEMA_VIOLATION,
            message="Payload is not a list of records",
            details=f"Expected list, got {type(parsed).__name__}",
            severity=Severity.CRITICAL,
            recoverable=False,
            field_name='payload',
            original_value=parsed,
        ))

    result.records = records

    if not records:
        result.warnings.append(IntegrityWarning(
            type=WarningType.EMPTY_DATASET,
            message="Empty record list",
            details="No employee records found in payload",
        ))
        return result

    for index, element in enumerate(records):
        if isinstance(element, dict):
            result.record_indices.append(index)
        elif element is None:
            result.errors.append(IntegrityError(
                type=ErrorType.CRITICAL_DATA_LOSS,
                message="Employee record is null",
                details=f"Record at index {index} is completely missing",
                severity=Severity.HIGH,
                recoverable=False,
                record_index=index,
            ))
        else:
            result.errors.append(IntegrityError(
                type=ErrorType.SCHEMA_VIOLATION,
                message="Employee record is not an object",
                details=f"Record at index {index} is {type(element).__name__}",
                severity=Severity.HIGH,
                recoverable=False,
                record_index=index,
                original_value=element,
            ))

    logger.debug(
        f"Structure check: {len(records)} elements, "
        f"{len(result.record_indices)} records, {len(result.errors)} errors"
    )
    return result
