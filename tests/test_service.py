"""
tests/test_service.py - End-to-End Pipeline Tests

Covers the four reference uploads (clean, repairable syntax, nameless
record, unreadable payload) plus byte decoding, storage transactions,
operator guidance and policy enforcement.

Author: Kinerja Dashboard Project
License: MIT
"""

import pytest

from kinerja_integrity.models import (
    CompetencyScore, ErrorType, ParseStrategy, RecommendedAction, WarningType,
)
from kinerja_integrity.policy import RecoveryPolicy
from kinerja_integrity.service import (
    get_recovery_options_for_user,
    process_employee_records,
    process_performance_data,
    validate_employee_records,
    validate_json_integrity,
)
from kinerja_integrity.storage import InMemoryStorageSink, StorageError


CLEAN = '[{"name":"John","performance":[{"name":"Leadership","score":85}]}]'
UNQUOTED_KEYS = '[{name: "John", performance: [{name:"Leadership",score:85}]}]'
NAMELESS = '[{"name": "", "performance": []}]'
UNREADABLE = '[{"id": 1, "nip": "1987'
TRUNCATED = (
    '[{"name": "John", "performance": [{"name": "Leadership", "score": 85}]}, '
    '{"name": "Jane", "performance": [{"name": "Leadership", "score": 7'
)
TWO_EMPLOYEES = (
    '[{"name": "John", "performance": [{"name": "Leadership", "score": 85}]}, '
    '{"name": "Jane", "performance": [{"name": "Leadership", "score": 90}]}]'
)
DUPLICATES = (
    '[{"name": "John", "performance": [{"name": "Leadership", "score": 80}]}, '
    '{"name": " john ", "performance": [{"name": "Leadership", "score": 90}]}]'
)


class FailingStorageSink(InMemoryStorageSink):
    """In-memory sink that rejects writes for one employee name."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    def upsert_employee(self, record):
        if record.name == self.fail_on:
            raise StorageError(f"Write rejected for employee '{record.name}'")
        return super().upsert_employee(record)


@pytest.fixture
def policy():
    return RecoveryPolicy()


class TestReferenceUploads:
    """Four canonical uploads and their verdicts."""

    def test_clean_upload(self, policy):
        result = validate_json_integrity(CLEAN, policy)

        assert result.is_valid
        assert not result.has_corruption
        assert result.warnings == []
        assert result.summary.integrity_score == 100
        assert result.summary.recommended_action is RecommendedAction.PROCEED
        assert result.parse_strategy is ParseStrategy.DIRECT

        op = process_performance_data(CLEAN, policy)
        assert op.success
        assert op.data[0].name == 'John'
        assert op.data[0].performance == [CompetencyScore('Leadership', 85.0)]
        assert op.metadata.records_processed == 1
        assert op.metadata.records_recovered == 0

    def test_repairable_syntax(self, policy):
        result = validate_json_integrity(UNQUOTED_KEYS, policy)

        assert result.is_valid
        assert result.parse_strategy is ParseStrategy.SYNTAX_REPAIR
        assert [w.type for w in result.warnings] == [WarningType.FORMAT_ANOMALY]
        assert result.summary.integrity_score == 98
        assert len(result.parse_errors) == 1

    def test_nameless_record_recovered(self, policy):
        result = validate_json_integrity(NAMELESS, policy)

        assert not result.is_valid
        assert result.summary.corrupted_records == 1
        assert result.summary.recoverable_records == 1
        assert result.summary.integrity_score == 88
        assert result.summary.recommended_action is RecommendedAction.REVIEW_REQUIRED

        op = process_performance_data(NAMELESS, policy)
        assert op.success
        assert op.data[0].name == 'Unnamed Employee 001'
        assert op.data[0].performance == [CompetencyScore('Overall', 0.0)]
        assert op.metadata.records_recovered == 1

    def test_unreadable_payload(self, policy):
        op = process_performance_data(UNREADABLE, policy)

        assert not op.success
        assert op.data is None
        assert op.metadata.records_processed == 0
        integrity = op.integrity_result
        assert integrity.fatal
        assert integrity.summary.integrity_score == 0
        assert integrity.summary.recommended_action is RecommendedAction.ABORT
        assert len(integrity.parse_errors) == 3
        assert [e.type for e in integrity.errors] == [ErrorType.JSON_PARSE_ERROR]
        assert integrity.errors[0].details == '; '.join(integrity.parse_errors)

    def test_reconstructed_payload_flags_cut_off_record(self, policy):
        op = process_performance_data(TRUNCATED, policy)
        integrity = op.integrity_result

        assert op.success
        assert integrity.has_corruption
        assert integrity.parse_strategy is ParseStrategy.REGEX_FALLBACK
        assert [e.name for e in op.data] == ['John', 'Jane']
        assert op.data[0].performance == [CompetencyScore('Leadership', 85.0)]

        cut_off = [e for e in integrity.errors if e.record_index == 1]
        assert len(cut_off) == 1
        assert cut_off[0].type is ErrorType.DATA_CORRUPTION
        assert not cut_off[0].recoverable
        assert integrity.summary.corrupted_records == 1
        assert CompetencyScore('Leadership', 7.0) not in op.data[1].performance

    def test_cut_off_record_skipped_by_policy(self):
        op = process_performance_data(TRUNCATED, RecoveryPolicy(skip_corrupted_records=True))

        assert [e.name for e in op.data] == ['John']
        assert op.records_skipped == 1

    def test_validation_is_repeatable(self, policy):
        first = validate_json_integrity(NAMELESS, policy).to_dict()
        second = validate_json_integrity(NAMELESS, policy).to_dict()

        assert first == second

    @pytest.mark.parametrize("payload", [NAMELESS, DUPLICATES, TRUNCATED])
    def test_processing_is_repeatable(self, policy, payload):
        first = process_performance_data(payload, policy)
        second = process_performance_data(payload, policy)

        assert [e.to_dict() for e in first.data] == [e.to_dict() for e in second.data]
        assert first.warnings == second.warnings
        assert first.errors == second.errors


class TestPayloadShapes:
    """Bytes, lone records and pre-parsed input."""

    def test_bom_is_ignored(self, policy):
        result = validate_json_integrity(b'\xef\xbb\xbf' + CLEAN.encode('utf-8'), policy)

        assert result.is_valid
        assert result.summary.integrity_score == 100

    def test_invalid_utf8_reported(self, policy):
        raw = b'[{"name": "Jo\xffn", "performance": [{"name": "Leadership", "score": 85}]}]'
        result = validate_json_integrity(raw, policy)

        assert not result.fatal
        assert result.errors[0].type is ErrorType.ENCODING_ERROR
        assert result.errors[0].recoverable
        assert WarningType.ENCODING_ISSUE in [w.type for w in result.warnings]

    def test_lone_record_wrapped(self, policy):
        op = process_performance_data('{"name": "John", "performance": []}', policy)

        assert op.success
        assert [e.name for e in op.data] == ['John']
        assert op.integrity_result.errors[0].type is ErrorType.SCHEMA_VIOLATION

    def test_pre_parsed_records(self, policy):
        records = [{'name': 'John', 'performance': [{'name': 'Leadership', 'score': '85'}]}]
        result = validate_employee_records(records, policy)

        assert result.parse_strategy is ParseStrategy.PRE_PARSED
        assert result.is_valid
        assert [w.type for w in result.warnings] == [WarningType.TYPE_COERCED]

        op = process_employee_records(records, policy)
        assert op.data[0].performance[0].score == 85.0

    def test_oversized_payload_is_fatal(self):
        result = validate_json_integrity(CLEAN, RecoveryPolicy(max_payload_bytes=10))

        assert result.fatal
        assert "exceeds limit" in result.parse_errors[0]


class TestStorage:
    """Recovered batches are written atomically."""

    def test_batch_stored(self, policy):
        sink = InMemoryStorageSink()
        op = process_performance_data(TWO_EMPLOYEES, policy, sink=sink, session_id='s1')

        assert op.success
        assert op.storage_errors == []
        assert sorted(row['name'] for row in sink.employees.values()) == ['Jane', 'John']
        assert sink.scores[(1, 's1')] == [{'name': 'Leadership', 'score': 85.0}]

    def test_failed_write_rolls_back(self, policy):
        sink = FailingStorageSink(fail_on='Jane')
        op = process_performance_data(TWO_EMPLOYEES, policy, sink=sink, session_id='s1')

        assert not op.success
        assert len(op.storage_errors) == 1
        assert op.storage_errors[0].startswith("storage_error:")
        assert op.errors == []
        assert sink.employees == {}
        assert sink.scores == {}
        assert len(op.data) == 2

    def test_invalid_batch_not_stored_without_auto_fix(self):
        sink = InMemoryStorageSink()
        op = process_performance_data(NAMELESS, RecoveryPolicy(auto_fix=False), sink=sink)

        assert not op.success
        assert sink.employees == {}
        assert op.data[0].name == ''

    def test_reupload_updates_existing_employee(self, policy):
        sink = InMemoryStorageSink()
        process_performance_data(CLEAN, policy, sink=sink, session_id='s1')
        process_performance_data(CLEAN, policy, sink=sink, session_id='s2')

        assert len(sink.employees) == 1
        assert set(sink.scores) == {(1, 's1'), (1, 's2')}


class TestPolicyEffects:
    """Policy switches observed end to end."""

    def test_skip_and_fix_are_exclusive(self):
        payload = '[{"performance": []}, {"name": "Jane", "performance": [{"name": "Leadership", "score": 90}]}]'
        op = process_performance_data(
            payload, RecoveryPolicy(auto_fix=False, skip_corrupted_records=True)
        )

        assert op.records_skipped == 1
        assert [e.name for e in op.data] == ['Jane']
        assert op.metadata.records_recovered == 0

    def test_dry_run_reports_previews(self):
        op = process_performance_data(NAMELESS, RecoveryPolicy(auto_fix=False))

        assert any(w.startswith("recovery_preview: Would apply") for w in op.warnings)

    def test_policy_is_required(self):
        with pytest.raises(TypeError):
            process_performance_data(CLEAN, None)
        with pytest.raises(TypeError):
            validate_json_integrity(CLEAN, None)


class TestUserGuidance:
    """Operator-facing summary of a process result."""

    def test_clean_upload_can_proceed(self, policy):
        guidance = get_recovery_options_for_user(process_performance_data(CLEAN, policy))

        assert guidance.can_proceed
        assert not guidance.requires_user_action
        assert guidance.recommendations == ["Data quality is excellent. Safe to proceed."]
        assert guidance.actions == []

    def test_unreadable_upload_needs_user(self, policy):
        guidance = get_recovery_options_for_user(process_performance_data(UNREADABLE, policy))

        assert not guidance.can_proceed
        assert guidance.requires_user_action
        assert guidance.recommendations[0] == "Data quality is poor. Manual intervention required."
        assert guidance.to_dict()['canProceed'] is False

    def test_storage_failure_blocks_proceeding(self, policy):
        op = process_performance_data(
            TWO_EMPLOYEES, policy, sink=FailingStorageSink(fail_on='John')
        )
        guidance = get_recovery_options_for_user(op)

        assert not guidance.can_proceed
        assert len(guidance.recommendations) == 2
