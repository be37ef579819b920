"""
tests/test_recovery.py - Recovery Engine Tests

Covers:
1. Placeholder names (deterministic, collision-free)
2. Dry run (auto-fix off) reports previews and mutates nothing
3. Skip rules and the skip/fix exclusivity
4. Invalid competency entries, missing scores and oversized lists
5. Default performance entry and metadata placeholders
6. Duplicate-identity losers

Author: Kinerja Dashboard Project
License: MIT
"""

import pytest

from kinerja_integrity.models import (
    CompetencyScore, Employee, ErrorType, IntegrityError, Severity, WarningType,
)
from kinerja_integrity.policy import RecoveryPolicy
from kinerja_integrity.recovery import recover


def _error(index, recoverable=True, error_type=ErrorType.SCHEMA_VIOLATION):
    return IntegrityError(
        type=error_type,
        message="test error",
        severity=Severity.HIGH if recoverable else Severity.CRITICAL,
        recoverable=recoverable,
        record_index=index,
    )


def _employee(name, index, scores=(('Leadership', 80.0),), **meta):
    return Employee(
        name=name,
        performance=[CompetencyScore(c, s) for c, s in scores],
        source_index=index,
        **meta,
    )


class TestPlaceholderNames:
    """Nameless records get a deterministic placeholder."""

    def test_placeholder_assigned_on_copy(self):
        original = _employee('', 0)
        outcome = recover([original], [_error(0)], RecoveryPolicy())

        assert outcome.data[0].name == 'Unnamed Employee 001'
        assert outcome.records_fixed == 1
        assert original.name == ''
        assert outcome.warnings[0].type is WarningType.DEFAULT_APPLIED
        assert outcome.warnings[0].new_value == 'Unnamed Employee 001'

    def test_placeholder_skips_taken_names(self):
        employees = [_employee('unnamed employee 001', 0), _employee('', 1), _employee('', 2)]
        outcome = recover(employees, [_error(1), _error(2)], RecoveryPolicy())

        assert [e.name for e in outcome.data] == [
            'unnamed employee 001', 'Unnamed Employee 002', 'Unnamed Employee 003',
        ]

    def test_placeholders_are_repeatable(self):
        def run():
            return [e.name for e in recover([_employee('', 0), _employee('', 1)],
                                            [_error(0), _error(1)], RecoveryPolicy()).data]

        assert run() == run()


class TestDryRun:
    """auto_fix off: previews only."""

    def test_nothing_mutated(self):
        original = _employee('', 0, scores=(('Leadership', None),))
        outcome = recover([original], [_error(0)], RecoveryPolicy(auto_fix=False))

        assert outcome.preview
        assert outcome.data[0] is original
        assert original.name == ''
        assert original.performance[0].score is None
        assert outcome.records_fixed == 0
        assert all(w.type is WarningType.RECOVERY_PREVIEW for w in outcome.warnings)
        assert outcome.warnings[0].message == "Would apply: Generated placeholder name"
        assert len(outcome.warnings) == 2


class TestSkipRules:
    """skip_corrupted_records decides which records are dropped."""

    def test_unrecoverable_record_skipped(self):
        employees = [_employee('John', 0), _employee('Jane', 1)]
        outcome = recover(employees, [_error(1, recoverable=False)],
                          RecoveryPolicy(skip_corrupted_records=True))

        assert [e.name for e in outcome.data] == ['John']
        assert outcome.records_skipped == 1
        assert [w.type for w in outcome.warnings] == [WarningType.RECORD_SKIPPED]

    def test_unrecoverable_record_kept_without_skip(self):
        employees = [_employee('John', 0), _employee('Jane', 1)]
        outcome = recover(employees, [_error(1, recoverable=False)], RecoveryPolicy())

        assert len(outcome.data) == 2
        assert outcome.records_skipped == 0

    def test_any_error_skipped_when_not_fixing(self):
        employees = [_employee('', 0), _employee('Jane', 1)]
        policy = RecoveryPolicy(auto_fix=False, skip_corrupted_records=True)
        outcome = recover(employees, [_error(0)], policy)

        assert [e.name for e in outcome.data] == ['Jane']
        assert outcome.records_skipped == 1

    def test_skipped_record_is_never_fixed(self):
        employees = [_employee('', 0)]
        policy = RecoveryPolicy(skip_corrupted_records=True)
        outcome = recover(employees, [_error(0), _error(0, recoverable=False)], policy)

        assert outcome.data == []
        assert outcome.records_fixed == 0
        assert outcome.records_skipped == 1
        assert not any(w.type is WarningType.DEFAULT_APPLIED for w in outcome.warnings)


class TestPerformanceFixes:
    """Competency-level repairs."""

    def test_missing_score_becomes_zero(self):
        employee = _employee('John', 0, scores=(('Leadership', None), ('Teamwork', 70.0)))
        outcome = recover([employee], [_error(0)], RecoveryPolicy())

        assert outcome.data[0].performance == [
            CompetencyScore('Leadership', 0.0), CompetencyScore('Teamwork', 70.0),
        ]

    def test_invalid_competency_removed(self):
        employee = _employee('John', 0, scores=(('A', 50.0), ('Leadership', 80.0)))
        outcome = recover([employee], [_error(0)], RecoveryPolicy())

        assert outcome.data[0].performance == [CompetencyScore('Leadership', 80.0)]
        assert outcome.warnings[0].message == "Invalid competency entry removed"

    def test_long_competency_name_truncated(self):
        employee = _employee('John', 0, scores=(('x' * 120, 80.0),))
        outcome = recover([employee], [_error(0)], RecoveryPolicy())

        assert outcome.data[0].performance[0].name == 'x' * 100
        assert outcome.warnings[0].message == "Competency name truncated"

    def test_oversized_list_truncated(self):
        scores = tuple((f'Competency {i}', 80.0) for i in range(4))
        outcome = recover([_employee('John', 0, scores=scores)], [_error(0)],
                          RecoveryPolicy(max_performance_entries=2))

        assert [c.name for c in outcome.data[0].performance] == ['Competency 0', 'Competency 1']
        assert outcome.warnings[0].message == "Performance list truncated"


class TestDefaults:
    """Default entry and metadata placeholders."""

    def test_default_performance_entry(self):
        outcome = recover([_employee('John', 0, scores=())], [], RecoveryPolicy())

        assert outcome.data[0].performance == [CompetencyScore('Overall', 0.0)]
        assert outcome.records_fixed == 1

    def test_no_default_when_disabled(self):
        outcome = recover([_employee('John', 0, scores=())], [],
                          RecoveryPolicy(use_default_values=False))

        assert outcome.data[0].performance == []
        assert outcome.records_fixed == 0
        assert outcome.warnings == []

    def test_metadata_placeholders(self):
        outcome = recover([_employee('John', 0, nip='1987')], [],
                          RecoveryPolicy(fill_missing_metadata=True))

        employee = outcome.data[0]
        assert employee.nip == '1987'
        assert employee.gol == ''
        assert employee.organizational_level == ''
        assert len(outcome.warnings) == 5

    def test_clean_record_untouched(self):
        outcome = recover([_employee('John', 0)], [], RecoveryPolicy())

        assert outcome.records_fixed == 0
        assert outcome.warnings == []


class TestDuplicateLosers:
    """Losing side of a duplicate identity is dropped under auto-fix."""

    def test_loser_dropped(self):
        employees = [_employee('John', 0), _employee('John', 1)]
        errors = [_error(0, error_type=ErrorType.CIRCULAR_REFERENCE)]
        outcome = recover(employees, errors, RecoveryPolicy())

        assert [e.source_index for e in outcome.data] == [1]
        assert outcome.records_skipped == 1

    def test_loser_previewed_in_dry_run(self):
        employees = [_employee('John', 0), _employee('John', 1)]
        errors = [_error(0, error_type=ErrorType.CIRCULAR_REFERENCE)]
        outcome = recover(employees, errors, RecoveryPolicy(auto_fix=False))

        assert len(outcome.data) == 2
        assert outcome.records_skipped == 0
        assert outcome.warnings[0].type is WarningType.RECOVERY_PREVIEW
        assert outcome.warnings[0].message == "Would apply: Record skipped"

    def test_loser_fixes_never_previewed(self):
        employees = [_employee('John', 0, scores=(('Leadership', None),)), _employee('John', 1)]
        errors = [_error(0, error_type=ErrorType.CIRCULAR_REFERENCE)]

        applied = recover(employees, errors, RecoveryPolicy())
        previewed = recover(employees, errors, RecoveryPolicy(auto_fix=False))

        assert [w.message for w in applied.warnings if w.record_index == 0] == ["Record skipped"]
        assert [w.message for w in previewed.warnings if w.record_index == 0] == [
            "Would apply: Record skipped"
        ]

    def test_policy_required(self):
        with pytest.raises(TypeError):
            recover([], [], None)
