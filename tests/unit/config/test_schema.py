"""
slo-reconciler unit tests for config schema validation

Purpose
- Validate defaults, structured issue reporting, secret-key rejection, and
  schema-version migration guidance.
"""

from __future__ import annotations

import pytest

from slo_reconciler.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _paths(result_issues: tuple[ConfigValidationIssue, ...]) -> list[str]:
    return [issue.path for issue in result_issues]


def test_default_config_is_valid_and_independent_copy() -> None:
    config = default_config()
    config["reconciler"]["max_workers"] = 99

    result = validate_config(default_config())

    assert result.is_valid
    assert result.config == {**DEFAULT_CONFIG, "provider": {}}
    assert DEFAULT_CONFIG["reconciler"]["max_workers"] == 4


def test_validation_collects_every_issue() -> None:
    config = merge_config(
        default_config(),
        {
            "reconciler": {
                "max_workers": 0,
                "retry_delay_seconds": 0,
                "default_namespace": "Bad_NS",
            },
            "evaluation": {"warning_credit": 1.5},
            "observability": {"log_level": "chatty", "log_to_stdout": "yes"},
        },
    )

    result = validate_config(config)

    assert result.config is None
    assert not result.is_valid
    assert _paths(result.issues) == [
        "reconciler.max_workers",
        "reconciler.retry_delay_seconds",
        "reconciler.collection_timeout_seconds",
        "reconciler.default_namespace",
        "evaluation.warning_credit",
        "observability.log_level",
        "observability.log_to_stdout",
    ]
    messages = {issue.path: issue.message for issue in result.issues}
    assert messages["reconciler.retry_delay_seconds"] == "must be > 0.0"
    assert messages["evaluation.warning_credit"] == "must be <= 1.0"
    assert messages["observability.log_to_stdout"] == "expected boolean, got str"


def test_unknown_and_secret_keys_are_rejected() -> None:
    config = merge_config(
        default_config(),
        {"provider": {"apiKey": "sk-123", "endpoint": "http://prom"}, "extras": {}},
    )

    result = validate_config(config)

    messages = {issue.path: issue.message for issue in result.issues}
    assert messages == {
        "extras": "unknown field",
        "provider.apiKey": "embedded secret values are forbidden in config files",
        "provider.endpoint": "unknown field",
    }


def test_missing_sections_and_fields_are_reported() -> None:
    result = validate_config({"meta": {"schema_version": 1}, "reconciler": {"max_workers": 2}})

    assert _paths(result.issues) == [
        "evaluation",
        "observability",
        "reconciler.collection_timeout_seconds",
        "reconciler.default_namespace",
        "reconciler.retry_delay_seconds",
    ]
    assert all(issue.message == "missing required field" for issue in result.issues)


def test_schema_version_mismatch_carries_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": ConfigSchemaVersion + 1}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    (issue,) = excinfo.value.issues
    assert issue.path == "meta.schema_version"
    assert "upgrade the slo-reconciler runtime" in issue.message
    assert "meta.schema_version" in str(excinfo.value)
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_log_level_is_normalized_to_upper_case() -> None:
    config = merge_config(default_config(), {"observability": {"log_level": "debug"}})

    assert assert_valid_config(config)["observability"]["log_level"] == "DEBUG"


def test_non_mapping_root_is_rejected() -> None:
    result = validate_config(["not", "a", "table"])

    assert result.issues == (
        ConfigValidationIssue(path="<root>", message="expected object, got list"),
    )


def test_merge_is_deep_and_does_not_mutate_inputs() -> None:
    base = {"reconciler": {"max_workers": 4, "default_namespace": "default"}}
    overlay = {"reconciler": {"max_workers": 8}}

    merged = merge_config(base, overlay)

    assert merged == {"reconciler": {"max_workers": 8, "default_namespace": "default"}}
    assert base["reconciler"]["max_workers"] == 4


def test_redact_config_masks_sensitive_keys_recursively() -> None:
    redacted = redact_config(
        {"provider": {"values_file": "values.yaml", "auth_token": "t"}, "list": [{"password": "p"}]}
    )

    assert redacted == {
        "list": [{"password": "<redacted>"}],
        "provider": {"auth_token": "<redacted>", "values_file": "values.yaml"},
    }
    assert redact_config("nope") == {}
