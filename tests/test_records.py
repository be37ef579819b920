"""
tests/test_records.py - Record Validator Tests

Covers name, metadata, performance and score rules for a single record,
plus the free-standing normalization helpers.

Author: Kinerja Dashboard Project
License: MIT
"""

import pytest

from kinerja_integrity.models import ErrorType, Severity, WarningType
from kinerja_integrity.policy import RecoveryPolicy
from kinerja_integrity.records import (
    detect_encoding_anomaly,
    normalize_score,
    sanitize_competency_name,
    validate_record,
)


@pytest.fixture
def policy():
    return RecoveryPolicy()


def _types(findings):
    return [f.type for f in findings]


class TestNormalizeScore:
    """Score coercion helper."""

    @pytest.mark.parametrize("raw, expected", [
        (85, 85.0),
        (-10, 0.0),
        (150, 100.0),
        ("72.5", 72.5),
        ("abc", 0.0),
        (float('nan'), 0.0),
        (float('inf'), 0.0),
        (None, 0.0),
        (True, 0.0),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_score(raw) == expected


class TestNameRules:
    """Employee name presence, coercion and trimming."""

    def test_clean_record_has_no_findings(self, policy):
        result = validate_record(
            {'name': 'John', 'performance': [{'name': 'Leadership', 'score': 85}]}, 0, policy
        )

        assert result.errors == []
        assert result.warnings == []
        assert result.cleaned.name == 'John'
        assert result.cleaned.performance[0].score == 85.0

    def test_missing_name_is_recoverable_error(self, policy):
        result = validate_record({'performance': [{'name': 'Leadership', 'score': 85}]}, 3, policy)

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.type is ErrorType.SCHEMA_VIOLATION
        assert error.severity is Severity.HIGH
        assert error.recoverable
        assert error.record_index == 3
        assert error.field_name == 'name'
        assert result.cleaned.name == ""

    def test_blank_name_is_missing(self, policy):
        result = validate_record({'name': '   ', 'performance': []}, 0, policy)

        assert _types(result.errors) == [ErrorType.SCHEMA_VIOLATION]
        assert result.cleaned.name == ""

    def test_numeric_name_is_coerced(self, policy):
        result = validate_record({'name': 123, 'performance': []}, 0, policy)

        assert result.errors == []
        assert WarningType.TYPE_COERCED in _types(result.warnings)
        assert result.cleaned.name == '123'

    def test_padded_name_is_trimmed(self, policy):
        result = validate_record({'name': '  John   Smith ', 'performance': []}, 0, policy)

        assert result.cleaned.name == 'John Smith'
        assert WarningType.NAME_SANITIZED in _types(result.warnings)

    def test_nama_key_accepted(self, policy):
        result = validate_record({'nama': 'Budi', 'performance': []}, 0, policy)

        assert result.errors == []
        assert result.cleaned.name == 'Budi'


class TestMetadataRules:
    """Descriptive fields are text or null."""

    def test_numeric_nip_is_coerced(self, policy):
        result = validate_record({'name': 'John', 'nip': 1987, 'performance': []}, 0, policy)

        assert result.cleaned.nip == '1987'
        coerced = [w for w in result.warnings if w.type is WarningType.TYPE_COERCED]
        assert [w.field_name for w in coerced] == ['nip']

    def test_numeric_id_is_silent(self, policy):
        result = validate_record({'id': 7, 'name': 'John', 'performance': []}, 0, policy)

        assert result.cleaned.id == '7'
        assert WarningType.TYPE_COERCED not in _types(result.warnings)

    def test_unsupported_type_is_dropped(self, policy):
        result = validate_record({'name': 'John', 'gol': ['III'], 'performance': []}, 0, policy)

        assert result.cleaned.gol is None
        assert len(result.errors) == 1
        assert result.errors[0].severity is Severity.LOW
        assert result.errors[0].field_name == 'gol'


class TestPerformanceRules:
    """Performance sequence shape, size and competency names."""

    def test_missing_performance_is_warning(self, policy):
        result = validate_record({'name': 'John'}, 0, policy)

        assert result.errors == []
        assert _types(result.warnings) == [WarningType.MISSING_PERFORMANCE]
        assert result.cleaned.performance == []

    def test_non_list_performance(self, policy):
        result = validate_record({'name': 'John', 'performance': 'good'}, 0, policy)

        assert _types(result.errors) == [ErrorType.SCHEMA_VIOLATION]
        assert result.errors[0].severity is Severity.MEDIUM
        assert result.cleaned.performance == []

    def test_oversized_list_kept_whole_and_flagged(self):
        policy = RecoveryPolicy(max_performance_entries=2)
        entries = [{'name': f'Competency {i}', 'score': 80} for i in range(4)]
        result = validate_record({'name': 'John', 'performance': entries}, 0, policy)

        assert _types(result.errors) == [ErrorType.ARRAY_SIZE_EXCEEDED]
        assert result.errors[0].recoverable
        assert len(result.cleaned.performance) == 4

    def test_non_object_entry(self, policy):
        result = validate_record({'name': 'John', 'performance': ['Leadership']}, 0, policy)

        assert _types(result.errors) == [ErrorType.SCHEMA_VIOLATION]
        assert result.errors[0].field_name == 'performance[0]'
        assert result.cleaned.performance[0].name == ""
        assert result.cleaned.performance[0].score is None

    def test_competency_name_sanitized(self, policy):
        result = validate_record(
            {'name': 'John', 'performance': [{'name': '  Kualitas_Kinerja!! ', 'score': 80}]},
            0, policy,
        )

        assert result.errors == []
        assert result.cleaned.performance[0].name == 'KualitasKinerja'
        assert WarningType.COMPETENCY_SANITIZED in _types(result.warnings)

    @pytest.mark.parametrize("name", ['A', '!!!', 'x' * 101])
    def test_invalid_competency_name(self, policy, name):
        result = validate_record(
            {'name': 'John', 'performance': [{'name': name, 'score': 80}]}, 0, policy
        )

        assert ErrorType.INVALID_COMPETENCY_NAME in _types(result.errors)
        error = next(e for e in result.errors if e.type is ErrorType.INVALID_COMPETENCY_NAME)
        assert error.recoverable
        assert error.field_name == 'performance[0].name'

    def test_sanitizer(self):
        assert sanitize_competency_name('  Kualitas   Kinerja!! ') == 'Kualitas Kinerja'
        assert sanitize_competency_name('Self-Development') == 'Self-Development'


class TestScoreRules:
    """Score presence, type and range."""

    def _score_result(self, policy, score):
        return validate_record(
            {'name': 'John', 'performance': [{'name': 'Leadership', 'score': score}]}, 0, policy
        )

    def test_missing_score(self, policy):
        result = validate_record(
            {'name': 'John', 'performance': [{'name': 'Leadership'}]}, 0, policy
        )

        assert _types(result.errors) == [ErrorType.SCHEMA_VIOLATION]
        assert result.errors[0].field_name == 'performance[0].score'
        assert result.cleaned.performance[0].score is None

    @pytest.mark.parametrize("raw", ["abc", True, float('nan'), {'value': 80}])
    def test_non_numeric_score_is_corruption(self, policy, raw):
        result = self._score_result(policy, raw)

        assert _types(result.errors) == [ErrorType.DATA_CORRUPTION]
        assert result.errors[0].recoverable
        assert result.errors[0].severity is Severity.MEDIUM
        assert result.cleaned.performance[0].score is None

    def test_text_score_is_coerced(self, policy):
        result = self._score_result(policy, " 85 ")

        assert result.errors == []
        assert _types(result.warnings) == [WarningType.TYPE_COERCED]
        assert result.cleaned.performance[0].score == 85.0

    @pytest.mark.parametrize("raw, expected", [(150, 100.0), (-5, 0.0)])
    def test_out_of_range_score_is_clamped(self, policy, raw, expected):
        result = self._score_result(policy, raw)

        assert result.errors == []
        assert _types(result.warnings) == [WarningType.SCORE_CLAMPED]
        assert result.warnings[0].new_value == expected
        assert result.cleaned.performance[0].score == expected


class TestEncodingDetection:
    """Encoding anomalies are warnings, never errors."""

    def test_replacement_character(self, policy):
        result = validate_record({'name': 'Jo\ufffdn', 'performance': []}, 0, policy)

        assert result.errors == []
        assert WarningType.ENCODING_ISSUE in _types(result.warnings)

    def test_detector(self):
        assert detect_encoding_anomaly('plain text') is None
        assert detect_encoding_anomaly('caf\u00c3\u00a9') == 'UTF-8 mojibake'
        assert detect_encoding_anomaly('tab\x07bell') == 'control character'


class TestNonRecordElement:
    """Elements that are not maps produce no cleaned record."""

    def test_scalar_element(self, policy):
        result = validate_record(42, 5, policy)

        assert result.cleaned is None
        assert result.errors[0].record_index == 5
        assert not result.errors[0].recoverable

    def test_policy_required(self):
        with pytest.raises(TypeError):
            validate_record({'name': 'John'}, 0, None)
