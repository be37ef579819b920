"""
kinerja_integrity/middleware.py - Request Gate

Maps a validation result onto an HTTP-style decision for the API layer:

    fatal parse / structure          -> 400
    any critical error               -> 400
    high errors, auto-fix disabled   -> 422
    manual_intervention / abort,
      auto-fix disabled              -> 422 with the full report
    score below min_quality_score    -> 422
    review_required                  -> pass, warnings attached
    proceed                          -> pass

The route handlers themselves live outside this package.

Author: Kinerja Dashboard Project
License: MIT
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from .models import DataIntegrityResult, RecommendedAction, Severity
from .reporting import report
from .scoring import integrity_message, recovery_recommendation

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    """Whether a request may continue, and what to send back if not."""
    allowed: bool
    status_code: int
    error: Optional[str] = None
    body: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


def validation_headers(result: DataIntegrityResult, recovery_applied: bool = False) -> Dict[str, str]:
    return {
        'X-Data-Validation-Applied': 'true',
        'X-Data-Quality-Score': str(result.summary.integrity_score),
        'X-Data-Warnings': str(len(result.warnings)),
        'X-Recovery-Applied': 'true' if recovery_applied else 'false',
    }


def _blocked(result: DataIntegrityResult, status_code: int, error: str,
             recommendation: str, include_report: bool = False,
             extra: Optional[Dict[str, Any]] = None) -> GateDecision:
    details: Dict[str, Any] = {
        'message': integrity_message(result),
        'recommendation': recommendation,
        'integrityScore': result.summary.integrity_score,
        'errors': [e.to_dict() for e in result.errors],
        'recoveryOptions': [o.to_dict() for o in result.recovery_options],
    }
    if extra:
        details.update(extra)
    if include_report:
        details['report'] = report(result)
    logger.info(f"Request blocked ({status_code}): {error}")
    return GateDecision(
        allowed=False,
        status_code=status_code,
        error=error,
        body={'success': False, 'error': error, 'details': details},
        headers=validation_headers(result),
    )


def evaluate_request(result: DataIntegrityResult, auto_fix: bool,
                     min_quality_score: Optional[int] = None) -> GateDecision:
    """
    Decide what the API layer does with a validated upload.

    Args:
        result: Validation-only result for the request payload
        auto_fix: Whether the caller will run recovery before storing
        min_quality_score: Minimum integrity score; None disables the check
    """
    action = result.summary.recommended_action

    if result.fatal:
        return _blocked(result, 400, "Payload could not be read as employee records",
                        recovery_recommendation(RecommendedAction.ABORT), include_report=True)

    if any(e.severity is Severity.CRITICAL for e in result.errors):
        return _blocked(result, 400, "Critical data integrity issues detected",
                        recovery_recommendation(action))

    if not auto_fix:
        if any(e.severity is Severity.HIGH for e in result.errors):
            return _blocked(result, 422, "High priority data issues detected",
                            "Enable auto-fix or manually resolve issues")
        if action in (RecommendedAction.MANUAL_INTERVENTION, RecommendedAction.ABORT):
            return _blocked(result, 422, "Data integrity below processing threshold",
                            recovery_recommendation(action), include_report=True)

    if min_quality_score is not None and result.summary.integrity_score < min_quality_score:
        return _blocked(result, 422, "Data quality below acceptable threshold",
                        recovery_recommendation(action),
                        extra={'minimumRequired': min_quality_score})

    warnings = []
    if action is not RecommendedAction.PROCEED:
        warnings = [w.message for w in result.warnings] + [e.message for e in result.errors]
    return GateDecision(
        allowed=True,
        status_code=200,
        warnings=warnings,
        headers=validation_headers(result, recovery_applied=auto_fix and bool(result.errors)),
    )
