"""
kinerja_integrity/models.py - Integrity Pipeline Data Model

Plain value types shared by every pipeline stage:
1. Employee / CompetencyScore - the canonical performance snapshot
2. IntegrityError / IntegrityWarning - detected problems and observations
3. RecoveryOption - proposed remediation with confidence and risk
4. IntegritySummary / DataIntegrityResult - validation outcome
5. DatabaseOperationResult - outcome of a full process call

All objects are created fresh per call; nothing here is persisted.

Author: Kinerja Dashboard Project
License: MIT
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class ErrorType(Enum):
    """Categories of integrity errors."""
    JSON_PARSE_ERROR = "json_parse_error"
    DATA_CORRUPTION = "data_corruption"
    SCHEMA_VIOLATION = "schema_violation"
    CRITICAL_DATA_LOSS = "critical_data_loss"
    ENCODING_ERROR = "encoding_error"
    INVALID_COMPETENCY_NAME = "invalid_competency_name"
    ARRAY_SIZE_EXCEEDED = "array_size_exceeded"
    CIRCULAR_REFERENCE = "circular_reference"


class Severity(Enum):
    """Error severity, drives blocking policy and score penalty."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WarningType(Enum):
    """Non-blocking observations."""
    COMPETENCY_MERGED = "competency_merged"
    COMPETENCY_SANITIZED = "competency_sanitized"
    NAME_SANITIZED = "name_sanitized"
    DEFAULT_APPLIED = "default_applied"
    SCORE_CLAMPED = "score_clamped"
    TYPE_COERCED = "type_coerced"
    MISSING_PERFORMANCE = "missing_performance"
    EMPTY_DATASET = "empty_dataset"
    FORMAT_ANOMALY = "format_anomaly"
    ENCODING_ISSUE = "encoding_issue"
    QUALITY_CONCERN = "quality_concern"
    RECORD_FIXED = "record_fixed"
    RECORD_SKIPPED = "record_skipped"
    RECOVERY_PREVIEW = "recovery_preview"


class RecoveryOptionType(Enum):
    AUTO_FIX = "auto_fix"
    MANUAL_REVIEW = "manual_review"
    DATA_RESTORATION = "data_restoration"
    FALLBACK_VALUES = "fallback_values"
    USER_INPUT_REQUIRED = "user_input_required"


class Confidence(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    RISKY = "risky"


class RecommendedAction(Enum):
    """Overall verdict derived from the integrity score."""
    PROCEED = "proceed"
    REVIEW_REQUIRED = "review_required"
    MANUAL_INTERVENTION = "manual_intervention"
    ABORT = "abort"


class ParseStrategy(Enum):
    """Parse cascade stages, least to most permissive."""
    DIRECT = "direct"
    SYNTAX_REPAIR = "syntax_repair"
    REGEX_FALLBACK = "regex_fallback"
    PRE_PARSED = "pre_parsed"


# =============================================================================
# EMPLOYEE RECORDS
# =============================================================================

METADATA_FIELDS = ('nip', 'gol', 'pangkat', 'position', 'sub_position',
                   'organizational_level')


@dataclass
class CompetencyScore:
    """One named metric for one employee in one period."""
    name: str
    score: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'score': self.score}


@dataclass
class Employee:
    """
    One person's performance snapshot.

    ``source_index`` is the position of the record in the uploaded payload
    and ties the record back to the errors raised against it.
    """
    name: str
    performance: List[CompetencyScore] = field(default_factory=list)
    id: Optional[str] = None
    nip: Optional[str] = None
    gol: Optional[str] = None
    pangkat: Optional[str] = None
    position: Optional[str] = None
    sub_position: Optional[str] = None
    organizational_level: Optional[str] = None
    source_index: int = 0

    def copy(self) -> 'Employee':
        return Employee(
            name=self.name,
            performance=[CompetencyScore(p.name, p.score) for p in self.performance],
            id=self.id,
            nip=self.nip,
            gol=self.gol,
            pangkat=self.pangkat,
            position=self.position,
            sub_position=self.sub_position,
            organizational_level=self.organizational_level,
            source_index=self.source_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'name': self.name}
        if self.id is not None:
            data['id'] = self.id
        for meta in METADATA_FIELDS:
            value = getattr(self, meta)
            if value is not None:
                data[meta] = value
        data['performance'] = [p.to_dict() for p in self.performance]
        return data


# =============================================================================
# FINDINGS
# =============================================================================

@dataclass
class IntegrityError:
    """One detected problem."""
    type: ErrorType
    message: str
    severity: Severity
    recoverable: bool
    details: str = ""
    record_index: Optional[int] = None
    employee_name: Optional[str] = None
    field_name: Optional[str] = None
    original_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'message': self.message,
            'details': self.details,
            'severity': self.severity.value,
            'recoverable': self.recoverable,
            'recordIndex': self.record_index,
            'employeeName': self.employee_name,
            'fieldName': self.field_name,
            'originalValue': _safe_repr(self.original_value),
        }


@dataclass
class IntegrityWarning:
    """Non-blocking observation, same shape as an error minus severity."""
    type: WarningType
    message: str
    details: str = ""
    record_index: Optional[int] = None
    employee_name: Optional[str] = None
    field_name: Optional[str] = None
    original_value: Any = None
    new_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'message': self.message,
            'details': self.details,
            'recordIndex': self.record_index,
            'employeeName': self.employee_name,
            'fieldName': self.field_name,
            'originalValue': _safe_repr(self.original_value),
            'newValue': _safe_repr(self.new_value),
        }


@dataclass
class RecoveryOption:
    """A proposed remediation."""
    type: RecoveryOptionType
    description: str
    action: str
    confidence: Confidence
    risk_level: RiskLevel
    affected_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'description': self.description,
            'action': self.action,
            'confidence': self.confidence.value,
            'riskLevel': self.risk_level.value,
            'affectedFields': list(self.affected_fields),
        }


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class IntegritySummary:
    """Aggregate outcome of one validation call."""
    total_records: int
    corrupted_records: int
    recoverable_records: int
    data_loss_percentage: float
    integrity_score: int
    recommended_action: RecommendedAction

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalRecords': self.total_records,
            'corruptedRecords': self.corrupted_records,
            'recoverableRecords': self.recoverable_records,
            'dataLossPercentage': self.data_loss_percentage,
            'integrityScore': self.integrity_score,
            'recommendedAction': self.recommended_action.value,
        }


@dataclass
class DataIntegrityResult:
    """Outcome of a validation-only call."""
    is_valid: bool
    has_corruption: bool
    errors: List[IntegrityError]
    warnings: List[IntegrityWarning]
    recovery_options: List[RecoveryOption]
    summary: IntegritySummary
    fatal: bool = False
    parse_strategy: Optional[ParseStrategy] = None
    parse_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isValid': self.is_valid,
            'hasCorruption': self.has_corruption,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
            'recoveryOptions': [o.to_dict() for o in self.recovery_options],
            'summary': self.summary.to_dict(),
            'parseStrategy': self.parse_strategy.value if self.parse_strategy else None,
            'parseErrors': list(self.parse_errors),
        }


@dataclass
class OperationMetadata:
    operation: str
    timestamp: str
    records_processed: int
    records_recovered: int
    data_quality_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'timestamp': self.timestamp,
            'recordsProcessed': self.records_processed,
            'recordsRecovered': self.records_recovered,
            'dataQualityScore': self.data_quality_score,
        }


@dataclass
class DatabaseOperationResult:
    """
    Outcome of a full process call.

    ``data`` is ``None`` whenever the payload could not be turned into
    records at all. ``storage_errors`` are kept apart from integrity
    problems because the pipeline never retries them.
    """
    success: bool
    data: Optional[List[Employee]]
    errors: List[str]
    warnings: List[str]
    recovery_options: List[RecoveryOption]
    metadata: OperationMetadata
    integrity_result: Optional[DataIntegrityResult] = None
    storage_errors: List[str] = field(default_factory=list)
    records_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'data': [e.to_dict() for e in self.data] if self.data is not None else None,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'storageErrors': list(self.storage_errors),
            'recoveryOptions': [o.to_dict() for o in self.recovery_options],
            'metadata': self.metadata.to_dict(),
            'recordsSkipped': self.records_skipped,
            'integrityResult': self.integrity_result.to_dict() if self.integrity_result else None,
        }


def _safe_repr(value: Any) -> Any:
    """Keep JSON-native values, stringify the rest."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)
