"""
kinerja_integrity/policy.py - Recovery Policy and Scoring Tables

DESIGN PRINCIPLE: One explicit policy value per call.
Every stage receives the RecoveryPolicy it should obey; there are no
per-service default option objects.

Also holds the scoring constants (severity penalties, warning penalty,
recommended-action ladder) as named tables.

Author: Kinerja Dashboard Project
License: MIT
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple, Union
import logging

from pydantic import BaseModel, ConfigDict, Field

from .models import RecommendedAction, Severity

logger = logging.getLogger(__name__)


# =============================================================================
# POLICY KNOBS
# =============================================================================

class CompetencyMergePolicy(Enum):
    """How near-duplicate competency entries collapse into one."""
    KEEP_FIRST = "keep_first"
    KEEP_LAST = "keep_last"
    AVERAGE = "average"


class IdentityResolution(Enum):
    """Which record survives when two records share an identity."""
    LAST_WRITE_WINS = "last_write_wins"
    FIRST_WRITE_WINS = "first_write_wins"


class RecoveryPolicy(BaseModel):
    """Complete recovery configuration for one pipeline call."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    auto_fix: bool = Field(default=True, alias="autoFix")
    use_default_values: bool = Field(default=True, alias="useDefaultValues")
    skip_corrupted_records: bool = Field(default=False, alias="skipCorruptedRecords")
    max_recovery_attempts: int = Field(default=3, ge=1, le=3, alias="maxRecoveryAttempts")

    max_performance_entries: int = Field(default=25, ge=1, alias="maxPerformanceEntries")
    competency_merge: CompetencyMergePolicy = Field(
        default=CompetencyMergePolicy.KEEP_FIRST, alias="competencyMerge"
    )
    identity_resolution: IdentityResolution = Field(
        default=IdentityResolution.LAST_WRITE_WINS, alias="identityResolution"
    )
    max_payload_bytes: int = Field(default=5_000_000, gt=0, alias="maxPayloadBytes")
    fill_missing_metadata: bool = Field(default=False, alias="fillMissingMetadata")


def require_policy(policy: Any) -> RecoveryPolicy:
    """Reject a missing policy; a None here is a caller bug, not bad data."""
    if not isinstance(policy, RecoveryPolicy):
        raise TypeError(
            f"RecoveryPolicy required, got {type(policy).__name__}"
        )
    return policy


def load_policy(filepath: Union[str, Path]) -> RecoveryPolicy:
    """Load a policy from a JSON file (camelCase or snake_case keys)."""
    filepath = Path(filepath)
    with open(filepath, 'r', encoding='utf-8') as f:
        config = json.load(f)
    policy = RecoveryPolicy.model_validate(config)
    logger.info(f"Loaded recovery policy from {filepath.name}")
    return policy


# =============================================================================
# SCORING TABLES
# =============================================================================

SEVERITY_PENALTIES: Dict[Severity, int] = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 1,
}

WARNING_PENALTY = 2
WARNING_PENALTY_CAP = 20

# (minimum score, action), checked top-down
ACTION_THRESHOLDS: Tuple[Tuple[int, RecommendedAction], ...] = (
    (90, RecommendedAction.PROCEED),
    (70, RecommendedAction.REVIEW_REQUIRED),
    (40, RecommendedAction.MANUAL_INTERVENTION),
    (0, RecommendedAction.ABORT),
)

QUALITY_LEVELS: Tuple[Tuple[int, str], ...] = (
    (90, 'excellent'),
    (70, 'good'),
    (40, 'fair'),
    (0, 'poor'),
)


# =============================================================================
# RECORD RULE CONSTANTS
# =============================================================================

COMPETENCY_NAME_MIN_LENGTH = 2
COMPETENCY_NAME_MAX_LENGTH = 100
SCORE_MIN = 0.0
SCORE_MAX = 100.0
DEFAULT_COMPETENCY_NAME = "Overall"
DEFAULT_COMPETENCY_SCORE = 0.0
PLACEHOLDER_NAME_TEMPLATE = "Unnamed Employee {number:03d}"
