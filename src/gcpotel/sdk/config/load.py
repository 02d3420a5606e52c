"""Configuration loading, parsing, and validation for the gcpotel exporters."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from gcpotel.api.types import (
    DEFAULT_MAX_SPANS_PER_REQUEST,
    DEFAULT_METRIC_PREFIX,
    DEFAULT_RESOURCE_LABEL_KEYS,
    MAX_TIME_SERIES_PER_REQUEST,
    Config,
    MonitoringConfig,
    ServiceConfig,
    TraceConfig,
    ValidationConfig,
)
from gcpotel.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable naming the config file when no path is given
CONFIG_PATH_ENV_VAR = "GCPOTEL_CONFIG_PATH"

# Pattern for environment variable substitution: ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

KNOWN_SECTIONS = {
    "service",
    "project_id",
    "credentials_token",
    "monitoring_endpoint",
    "trace_endpoint",
    "timeout_seconds",
    "tolerate_partial_failure",
    "monitoring",
    "trace",
    "validation",
}


def _substitute_env_vars(value: str, strict: bool) -> str:
    """Substitute ${VAR_NAME} patterns with environment variable values.

    Raises:
        ConfigurationError: If strict=True and an env var is not set.
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise ConfigurationError(f"Environment variable '{var_name}' is not set")
            logger.warning("Environment variable '%s' not set, using empty string", var_name)
            return ""
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any, strict: bool) -> Any:
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v, strict) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item, strict) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data, strict)
    else:
        return data


def _as_bool(value: Any, name: str, default: bool) -> bool:
    """Coerce a YAML scalar to bool, accepting strings from env substitution."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    logger.warning("Invalid boolean for %s: %r, defaulting to %s", name, value, default)
    return default


def _as_positive_int(value: Any, name: str, default: int, maximum: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r, defaulting to %d", name, value, default)
        return default
    if number < 1:
        logger.warning("%s must be at least 1, got %d; defaulting to %d", name, number, default)
        return default
    if maximum is not None and number > maximum:
        logger.warning("%s must be at most %d, got %d; using %d", name, maximum, number, maximum)
        return maximum
    return number


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_service_config(data: dict[str, Any]) -> ServiceConfig:
    """Parse service configuration section."""
    return ServiceConfig(
        name=data.get("name", ""),
        version=data.get("version"),
    )


def _parse_monitoring_config(data: dict[str, Any]) -> MonitoringConfig:
    """Parse the Cloud Monitoring section."""
    prefix = data.get("prefix") or DEFAULT_METRIC_PREFIX
    keys = data.get("resource_label_keys", list(DEFAULT_RESOURCE_LABEL_KEYS))
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        logger.warning("monitoring.resource_label_keys must be a list of strings, using defaults")
        keys = list(DEFAULT_RESOURCE_LABEL_KEYS)

    return MonitoringConfig(
        enabled=_as_bool(data.get("enabled", True), "monitoring.enabled", True),
        prefix=str(prefix).rstrip("/"),
        max_batch_size=_as_positive_int(
            data.get("max_batch_size", MAX_TIME_SERIES_PER_REQUEST),
            "monitoring.max_batch_size",
            MAX_TIME_SERIES_PER_REQUEST,
            maximum=MAX_TIME_SERIES_PER_REQUEST,
        ),
        export_interval_millis=_as_positive_int(
            data.get("export_interval_millis", 60_000),
            "monitoring.export_interval_millis",
            60_000,
        ),
        resource_label_keys=keys,
    )


def _parse_trace_config(data: dict[str, Any]) -> TraceConfig:
    """Parse the Cloud Trace section."""
    return TraceConfig(
        enabled=_as_bool(data.get("enabled", True), "trace.enabled", True),
        max_batch_size=_as_positive_int(
            data.get("max_batch_size", DEFAULT_MAX_SPANS_PER_REQUEST),
            "trace.max_batch_size",
            DEFAULT_MAX_SPANS_PER_REQUEST,
        ),
        batch_spans=_as_bool(data.get("batch_spans", True), "trace.batch_spans", True),
    )


def _parse_validation_config(data: dict[str, Any]) -> ValidationConfig:
    """Parse validation configuration section."""
    mode = data.get("mode", "permissive")
    if mode not in ("strict", "permissive"):
        logger.warning("Unknown validation mode '%s', defaulting to permissive", mode)
        mode = "permissive"
    return ValidationConfig(mode=mode)


def _parse_timeout(value: Any) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid timeout_seconds %r, defaulting to 10.0", value)
        return 10.0
    if timeout <= 0:
        logger.warning("timeout_seconds must be positive, got %s; defaulting to 10.0", timeout)
        return 10.0
    return timeout


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []

    if not config.service.name:
        errors.append("service.name is required")

    if not config.monitoring.enabled and not config.trace.enabled:
        errors.append("at least one of monitoring.enabled and trace.enabled must be true")

    for name, endpoint in (
        ("monitoring_endpoint", config.monitoring_endpoint),
        ("trace_endpoint", config.trace_endpoint),
    ):
        if endpoint and not endpoint.startswith(("http://", "https://")):
            errors.append(f"{name} must be an http(s) URL, got '{endpoint}'")

    return errors


def resolve_config_path(path: str | Path | None) -> Path:
    """Return ``path``, or the path named by GCPOTEL_CONFIG_PATH.

    Raises:
        ConfigurationError: If neither is set.
    """
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if not env_path:
        raise ConfigurationError(
            f"No configuration path given and {CONFIG_PATH_ENV_VAR} is not set"
        )
    return Path(env_path)


def load_config(path: str | Path | None = None, strict: bool | None = None) -> Config:
    """Load and parse configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. Falls back to the
            GCPOTEL_CONFIG_PATH environment variable.
        strict: Override validation mode. If None, use mode from config file.

    Returns:
        Parsed and validated Config.

    Raises:
        ConfigurationError: If file doesn't exist, YAML is invalid,
                           or validation fails in strict mode.
    """
    path = resolve_config_path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw_data = yaml.safe_load(f)
            if raw_data is None:
                raw_data = {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got {type(raw_data).__name__}"
        )

    # Determine validation mode early (needed for env var substitution)
    validation_data = raw_data.get("validation") or {}
    validation_mode = validation_data.get("mode", "permissive")
    is_strict = strict if strict is not None else (validation_mode == "strict")

    data = _substitute_env_vars_recursive(raw_data, strict=is_strict)

    unknown = sorted(set(data) - KNOWN_SECTIONS)
    if unknown:
        logger.warning("Unknown configuration keys ignored: %s", unknown)

    config = Config(
        service=_parse_service_config(data.get("service") or {}),
        project_id=_as_optional_str(data.get("project_id")),
        credentials_token=_as_optional_str(data.get("credentials_token")),
        monitoring_endpoint=_as_optional_str(data.get("monitoring_endpoint")),
        trace_endpoint=_as_optional_str(data.get("trace_endpoint")),
        timeout_seconds=_parse_timeout(data.get("timeout_seconds", 10.0)),
        tolerate_partial_failure=_as_bool(
            data.get("tolerate_partial_failure", False), "tolerate_partial_failure", False
        ),
        monitoring=_parse_monitoring_config(data.get("monitoring") or {}),
        trace=_parse_trace_config(data.get("trace") or {}),
        validation=_parse_validation_config(data.get("validation") or {}),
    )

    # Override validation mode if specified
    if strict is not None:
        config.validation.mode = "strict" if strict else "permissive"

    errors = _validate_config(config)
    if errors:
        if config.is_strict:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")
        for error in errors:
            logger.warning("Configuration problem: %s", error)

    return config
