"""Engine configuration.

Handles:
- Loading engine settings from a YAML file.
- Merging CLI options over file values.
- Validating the final configuration before the engine starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from benchtrend.change import SIGNIFICANCE_POLICIES

log = logging.getLogger("benchtrend")


# ---------------------------------------------------------------------------
# EngineConfig
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Resolved configuration for ingestion, timeline and comparison."""

    # Timeline statistics
    num_bootstrap_samples: int = 1000
    bootstrap_seed: int | None = None
    timeline_enabled: bool = True
    quiescence_timeout: float | None = None  # seconds; None waits forever

    # Change statistics
    significance_threshold: float | None = None  # percent; None = no filtering
    significance_policy: str = "flag"  # "flag" or "suppress"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a YAML/JSON-compatible dict."""
        return {f: getattr(self, f) for f in self.__dataclass_fields__}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: EngineConfig) -> list[ValidationError]:
    """Validate an engine configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.num_bootstrap_samples < 0:
        errors.append(
            ValidationError(
                field="num_bootstrap_samples",
                message=(
                    f"Bootstrap sample count cannot be negative "
                    f"(got {config.num_bootstrap_samples})."
                ),
            )
        )
    elif config.num_bootstrap_samples == 0 and config.timeline_enabled:
        errors.append(
            ValidationError(
                field="num_bootstrap_samples",
                message="Bootstrapping is disabled; timeline entries will have no confidence interval.",
                severity="warning",
            )
        )
    elif 0 < config.num_bootstrap_samples < 100:
        errors.append(
            ValidationError(
                field="num_bootstrap_samples",
                message=(
                    f"Only {config.num_bootstrap_samples} bootstrap samples; "
                    f"confidence intervals will be unstable."
                ),
                severity="warning",
            )
        )

    if config.significance_threshold is not None and config.significance_threshold < 0:
        errors.append(
            ValidationError(
                field="significance_threshold",
                message=(
                    f"Significance threshold cannot be negative "
                    f"(got {config.significance_threshold})."
                ),
            )
        )

    if config.significance_policy not in SIGNIFICANCE_POLICIES:
        errors.append(
            ValidationError(
                field="significance_policy",
                message=(
                    f"Unknown significance policy '{config.significance_policy}'. "
                    f"Choose one of: {', '.join(SIGNIFICANCE_POLICIES)}."
                ),
            )
        )
    elif config.significance_policy == "suppress" and config.significance_threshold is None:
        errors.append(
            ValidationError(
                field="significance_policy",
                message="Policy 'suppress' has no effect without a significance threshold.",
                severity="warning",
            )
        )

    if config.quiescence_timeout is not None and config.quiescence_timeout <= 0:
        errors.append(
            ValidationError(
                field="quiescence_timeout",
                message=f"Quiescence timeout must be positive (got {config.quiescence_timeout}).",
            )
        )

    return errors


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def load_config(config_path: Path) -> dict[str, Any]:
    """Load engine settings from a YAML file.

    File format::

        num_bootstrap_samples: 1000
        bootstrap_seed: 42
        timeline_enabled: true
        quiescence_timeout: 60

        significance_threshold: 5.0
        significance_policy: flag

    An empty file yields an empty dict.

    Returns:
        The parsed YAML as a dict.
    """
    try:
        import yaml
    except ImportError as exc:
        raise ImportError(
            "PyYAML is required for loading configuration files. "
            "Install it with: pip install pyyaml"
        ) from exc

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a YAML mapping, got {type(data).__name__}")

    return data


def config_from_dict(
    data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> EngineConfig:
    """Build an EngineConfig from parsed settings.

    CLI overrides whose value is not ``None`` take precedence over *data*.
    Unknown keys in *data* are logged and ignored.

    Raises:
        ValueError: If a value has the wrong type.
    """
    known = set(EngineConfig.__dataclass_fields__)
    for key in data:
        if key not in known:
            log.warning("Ignoring unknown config key: %s", key)

    merged = {k: v for k, v in data.items() if k in known}
    for key, value in (cli_overrides or {}).items():
        if key in known and value is not None:
            merged[key] = value

    config = EngineConfig()
    if "num_bootstrap_samples" in merged:
        config.num_bootstrap_samples = _as_int(merged, "num_bootstrap_samples")
    if merged.get("bootstrap_seed") is not None:
        config.bootstrap_seed = _as_int(merged, "bootstrap_seed")
    if "timeline_enabled" in merged:
        config.timeline_enabled = bool(merged["timeline_enabled"])
    if merged.get("quiescence_timeout") is not None:
        config.quiescence_timeout = _as_float(merged, "quiescence_timeout")
    if merged.get("significance_threshold") is not None:
        config.significance_threshold = _as_float(merged, "significance_threshold")
    if "significance_policy" in merged:
        config.significance_policy = str(merged["significance_policy"])

    return config


def _as_int(data: dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer, got {value!r}")
    return value


def _as_float(data: dict[str, Any], key: str) -> float:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number, got {value!r}")
    return float(value)
