"""Tests for core types, configuration and logging helpers."""

import pytest

from incremental_quality.core import (
    ConfigLoadError,
    DetectionConfig,
    Result,
    Severity,
    clamp_unit,
    load_detection_config,
)
from incremental_quality.core.logging import (
    _add_run_context,
    end_stage_metrics,
    end_workflow_metrics,
    get_stage_metrics,
    log_context,
    record_operation_timing,
    record_rows_sampled,
    start_stage_metrics,
    start_workflow_metrics,
)


class TestResult:
    """Tests for Result."""

    def test_ok(self):
        result = Result.ok(3, warnings=["rounded"])
        assert result.success
        assert result.unwrap() == 3
        assert result.warnings == ["rounded"]

    def test_fail(self):
        result = Result[int].fail("no data")
        assert not result.success
        with pytest.raises(ValueError, match="Result failed: no data"):
            result.unwrap()

    def test_map(self):
        assert Result.ok(2).map(lambda v: v * 10).unwrap() == 20
        failed = Result[int].fail("x")
        assert failed.map(lambda v: v * 10) is failed


class TestSharedTypes:
    """Tests for Severity and clamp_unit."""

    def test_severity_rank(self):
        ranked = sorted(Severity, key=lambda s: s.rank)
        assert ranked == [
            Severity.INFO,
            Severity.LOW,
            Severity.MEDIUM,
            Severity.HIGH,
            Severity.CRITICAL,
        ]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.5, 0.5), (-1.0, 0.0), (1.2, 1.0), (float("nan"), 0.0)],
    )
    def test_clamp_unit(self, value, expected):
        assert clamp_unit(value) == expected


class TestDetectionConfig:
    """Tests for DetectionConfig and its YAML loader."""

    def test_defaults(self):
        config = DetectionConfig()
        assert config.outlier_std_threshold == 3.0
        assert config.auto_approve_threshold == 0.95
        assert "n/a" in config.missing_indicator_set

    def test_indicator_set_is_normalised(self):
        config = DetectionConfig(missing_indicators=[" N/A ", "NULL"])
        assert config.missing_indicator_set == frozenset({"n/a", "null"})

    def test_date_format_matches(self):
        [iso, day_first, *_] = DetectionConfig().date_formats
        assert iso.matches("2024-01-15")
        assert not iso.matches("15/01/2024")
        assert day_first.matches("15/01/2024")

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_detection_config(tmp_path / "absent.yaml") == DetectionConfig()

    def test_load_overrides(self, tmp_path):
        path = tmp_path / "detection.yaml"
        path.write_text("outlier_std_threshold: 2.0\nignore_columns: [id]\n", encoding="utf-8")

        config = load_detection_config(path)
        assert config.outlier_std_threshold == 2.0
        assert config.ignore_columns == ["id"]
        assert config.min_affected_percentage == 0.01

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "detection.yaml"
        path.write_text("outlier_std_threshold: [2.0\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="Invalid YAML"):
            load_detection_config(path)

    def test_validation_error(self, tmp_path):
        path = tmp_path / "detection.yaml"
        path.write_text("auto_approve_threshold: 1.5\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="Validation error"):
            load_detection_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "detection.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="Expected a mapping"):
            load_detection_config(path)

    def test_shipped_config_loads(self):
        assert load_detection_config() == DetectionConfig()


class TestLogging:
    """Tests for log context and stage metrics."""

    def test_log_context_nests(self):
        with log_context(session_id="s1"):
            with log_context(stage="hitl_decision"):
                event = _add_run_context(None, "info", {"event": "x"})
            assert event == {"event": "x", "session_id": "s1", "stage": "hitl_decision"}
            assert _add_run_context(None, "info", {}) == {"session_id": "s1"}
        assert _add_run_context(None, "info", {}) == {}

    def test_stage_metrics(self):
        start_workflow_metrics("s1", "data.csv")
        start_stage_metrics("initial_exploration")
        record_rows_sampled(40)
        record_operation_timing("sampling", 0.5)
        record_operation_timing("sampling", 0.25)

        stage = end_stage_metrics()
        assert get_stage_metrics() is None
        assert stage.rows_sampled == 40
        assert stage.timings == {"sampling": 0.75}

        workflow = end_workflow_metrics()
        assert workflow.to_dict()["total_rows_sampled"] == 40
        assert [s.stage_name for s in workflow.stages] == ["initial_exploration"]

    def test_recorders_are_no_ops_outside_a_stage(self):
        record_rows_sampled(10)
        assert get_stage_metrics() is None
