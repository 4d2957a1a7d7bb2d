from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_DIR = Path("~/.config/agent-history").expanduser()
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.json"

DEFAULT_MAX_SIZE_MB = 100
DEFAULT_RETENTION_DAYS = 90

# Size enforcement kicks in at 90% of the limit and evicts down to 70%.
CLEANUP_THRESHOLD = 0.9
CLEANUP_TARGET = 0.7

KNOWN_PROVIDERS = {"ollama", "anthropic", "openai", "together", "groq", "openrouter"}

CONFIG_ENV_OVERRIDES = {
    "db_path": "AGENT_HISTORY_DB",
    "enabled": "AGENT_HISTORY_ENABLED",
    "mcp_enabled": "AGENT_HISTORY_MCP_ENABLED",
    "max_size_mb": "AGENT_HISTORY_MAX_SIZE_MB",
    "retention_days": "AGENT_HISTORY_RETENTION_DAYS",
    "dedup_window_s": "AGENT_HISTORY_DEDUP_WINDOW_S",
    "sync_interval_s": "AGENT_HISTORY_SYNC_INTERVAL_S",
    "drain_timeout_s": "AGENT_HISTORY_DRAIN_TIMEOUT_S",
    "extraction_enabled": "AGENT_HISTORY_EXTRACTION_ENABLED",
    "extraction_threshold": "AGENT_HISTORY_EXTRACTION_THRESHOLD",
    "extraction_overlap_tokens": "AGENT_HISTORY_EXTRACTION_OVERLAP_TOKENS",
    "summarizer_provider": "AGENT_HISTORY_SUMMARIZER_PROVIDER",
    "summarizer_model": "AGENT_HISTORY_SUMMARIZER_MODEL",
    "summarizer_api_key": "AGENT_HISTORY_SUMMARIZER_API_KEY",
    "summarizer_host": "AGENT_HISTORY_SUMMARIZER_HOST",
}

_INT_KEYS = {"retention_days", "extraction_threshold", "extraction_overlap_tokens"}
_FLOAT_KEYS = {"max_size_mb", "dedup_window_s", "sync_interval_s", "drain_timeout_s"}
_BOOL_KEYS = {"enabled", "mcp_enabled", "extraction_enabled"}
_POSITIVE_KEYS = {"dedup_window_s", "sync_interval_s", "extraction_threshold"}
_STR_KEYS = {
    "db_path",
    "summarizer_provider",
    "summarizer_model",
    "summarizer_api_key",
    "summarizer_host",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("AGENT_HISTORY_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class AgentHistoryConfig:
    db_path: str = str(DEFAULT_CONFIG_DIR / "llm_history.db")
    enabled: bool = True
    mcp_enabled: bool = True
    max_size_mb: float = DEFAULT_MAX_SIZE_MB
    retention_days: int = DEFAULT_RETENTION_DAYS
    dedup_window_s: float = 2.0
    sync_interval_s: float = 5.0
    drain_timeout_s: float = 2.0
    extraction_enabled: bool = True
    extraction_threshold: int = 4000
    extraction_overlap_tokens: int = 500
    summarizer_provider: str | None = None
    summarizer_model: str | None = None
    summarizer_api_key: str | None = None
    summarizer_host: str | None = None

    def max_size_bytes(self) -> int:
        """Return the database size limit in bytes, or 0 for unlimited."""

        if self.max_size_mb <= 0:
            return 0
        return int(self.max_size_mb * 1024 * 1024)

    def to_dict(self, *, redact_secrets: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if redact_secrets and data.get("summarizer_api_key"):
            data["summarizer_api_key"] = "***"
        return data


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_positive(value: object, default: float, *, key: str) -> float:
    parsed: float
    if key in _INT_KEYS:
        parsed = _parse_int(value, int(default), key=key)
    else:
        parsed = _parse_float(value, default, key=key)
    if parsed <= 0:
        warnings.warn(f"{key} must be positive, got {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> AgentHistoryConfig:
    cfg = AgentHistoryConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: AgentHistoryConfig, data: dict[str, Any]) -> AgentHistoryConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _POSITIVE_KEYS:
            setattr(cfg, key, _parse_positive(value, getattr(cfg, key), key=key))
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if value is not None and not isinstance(value, str):
            warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
            continue
        if key == "db_path":
            cfg.db_path = value or cfg.db_path
        else:
            setattr(cfg, key, value or None)
    return cfg


def validate_config_text(text: str) -> list[ValidationError]:
    """Validate raw config JSON, reporting every problem found."""

    if not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        return [ValidationError("json", f"invalid JSON: {exc}")]
    return validate_config_data(data)


def validate_config_data(data: object) -> list[ValidationError]:
    if not isinstance(data, dict):
        return [ValidationError("json", "config must be an object")]

    errors: list[ValidationError] = []
    for key in sorted(data):
        if key not in CONFIG_ENV_OVERRIDES:
            errors.append(ValidationError(key, "unknown setting"))

    for key in sorted(_BOOL_KEYS & data.keys()):
        if not isinstance(data[key], bool):
            errors.append(ValidationError(key, "must be a boolean"))

    for key in sorted(_STR_KEYS & data.keys()):
        value = data[key]
        if value is not None and not isinstance(value, str):
            errors.append(ValidationError(key, "must be a string"))

    numeric: dict[str, float] = {}
    for key in sorted((_INT_KEYS | _FLOAT_KEYS) & data.keys()):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(ValidationError(key, "must be a number"))
            continue
        if key in _INT_KEYS and not float(value).is_integer():
            errors.append(ValidationError(key, "must be an integer"))
            continue
        numeric[key] = float(value)

    if numeric.get("retention_days", 1) < 0:
        errors.append(ValidationError("retention_days", "must be non-negative"))
    for key in ("dedup_window_s", "sync_interval_s", "extraction_threshold"):
        if key in numeric and numeric[key] <= 0:
            errors.append(ValidationError(key, "must be positive"))
    for key in ("max_size_mb", "drain_timeout_s", "extraction_overlap_tokens"):
        if numeric.get(key, 0) < 0:
            errors.append(ValidationError(key, "must be non-negative"))

    threshold = numeric.get("extraction_threshold", AgentHistoryConfig.extraction_threshold)
    overlap = numeric.get(
        "extraction_overlap_tokens", AgentHistoryConfig.extraction_overlap_tokens
    )
    if threshold > 0 and overlap >= threshold:
        errors.append(
            ValidationError(
                "extraction_overlap_tokens", "must be smaller than extraction_threshold"
            )
        )

    provider = data.get("summarizer_provider")
    if isinstance(provider, str) and provider and provider.lower() not in KNOWN_PROVIDERS:
        errors.append(
            ValidationError(
                "summarizer_provider",
                f"must be one of: {', '.join(sorted(KNOWN_PROVIDERS))}",
            )
        )
    return errors
