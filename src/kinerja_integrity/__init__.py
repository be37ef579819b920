"""
Kinerja Data Integrity Pipeline

Ingests untrusted employee-performance uploads (JSON or CSV), detects
corruption at the syntax, structure and record level, applies
policy-gated automatic recovery, and scores the result with a ranked set
of recovery options for a human operator.

Version: 1.0.0

Stages:
- Raw parser (direct -> syntax repair -> regex fallback)
- Structural and record validators
- Integrity aggregator (competency merge, duplicate identities)
- Recovery engine (RecoveryPolicy)
- Quality scorer and reporters

Author: Kinerja Dashboard Project
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Kinerja Dashboard Project"

from .models import (
    # Records
    Employee,
    CompetencyScore,

    # Findings
    IntegrityError,
    IntegrityWarning,
    RecoveryOption,
    ErrorType,
    Severity,
    WarningType,
    RecoveryOptionType,
    Confidence,
    RiskLevel,

    # Results
    IntegritySummary,
    DataIntegrityResult,
    DatabaseOperationResult,
    OperationMetadata,
    RecommendedAction,
    ParseStrategy,
)

from .policy import (
    RecoveryPolicy,
    CompetencyMergePolicy,
    IdentityResolution,
    load_policy,
    require_policy,
)

from .parser import parse, ParseOutcome
from .structure import validate_structure
from .records import validate_record, normalize_score
from .aggregator import aggregate
from .recovery import recover, RecoveryOutcome
from .scoring import (
    score,
    generate_recovery_options,
    data_quality_level,
    integrity_message,
    recovery_recommendation,
)

from .service import (
    validate_json_integrity,
    validate_employee_records,
    process_performance_data,
    process_employee_records,
    get_recovery_options_for_user,
    UserRecoveryGuidance,
)

from .storage import StorageSink, InMemoryStorageSink, StorageError
from .middleware import evaluate_request, validation_headers, GateDecision
from .ingestion import decode_payload, hash_payload, load_payload_file, load_performance_csv
from .reporting import (
    report,
    operation_report,
    to_markdown,
    to_audit_json,
    records_to_dataframe,
    export_workbook,
)

__all__ = [
    # Pipeline entry points
    "validate_json_integrity",
    "validate_employee_records",
    "process_performance_data",
    "process_employee_records",
    "get_recovery_options_for_user",
    "UserRecoveryGuidance",

    # Policy
    "RecoveryPolicy",
    "CompetencyMergePolicy",
    "IdentityResolution",
    "load_policy",
    "require_policy",

    # Stages
    "parse",
    "ParseOutcome",
    "validate_structure",
    "validate_record",
    "normalize_score",
    "aggregate",
    "recover",
    "RecoveryOutcome",
    "score",
    "generate_recovery_options",
    "data_quality_level",
    "integrity_message",
    "recovery_recommendation",

    # Data model
    "Employee",
    "CompetencyScore",
    "IntegrityError",
    "IntegrityWarning",
    "RecoveryOption",
    "ErrorType",
    "Severity",
    "WarningType",
    "RecoveryOptionType",
    "Confidence",
    "RiskLevel",
    "IntegritySummary",
    "DataIntegrityResult",
    "DatabaseOperationResult",
    "OperationMetadata",
    "RecommendedAction",
    "ParseStrategy",

    # Storage
    "StorageSink",
    "InMemoryStorageSink",
    "StorageError",

    # API gate
    "evaluate_request",
    "validation_headers",
    "GateDecision",

    # Ingestion
    "decode_payload",
    "hash_payload",
    "load_payload_file",
    "load_performance_csv",

    # Reporting
    "report",
    "operation_report",
    "to_markdown",
    "to_audit_json",
    "records_to_dataframe",
    "export_workbook",
]
