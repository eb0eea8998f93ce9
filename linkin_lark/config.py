"""Configuration model and loaders for linkin-lark.

Responsibilities:
- Define runtime configuration as a typed dataclass passed explicitly to components.
- Provide deterministic precedence resolution for the API key and voice.
- Provide loader entry points for YAML- and environment-based configuration.

Key types:
- `LinkinLarkConfig`: normalized runtime settings for one conversion run.
- `ResolvedRuntime`: resolved API key and voice values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `LinkinLarkConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError
from .parsing import (
    normalize_optional_string,
    parse_permissive_boolean,
    parse_positive_float,
    parse_positive_int,
)
from .text.chunking import DEFAULT_MAX_CHARS
from .tts.voices import DEFAULT_MODEL_ID, DEFAULT_VOICE_ID

_DEFAULT_OUTPUT_DIR = Path("output")
_API_KEY_ENV_KEYS = ("LINKIN_LARK_API_KEY", "ELEVENLABS_API_KEY")
_VOICE_ENV_KEYS = ("LINKIN_LARK_VOICE_ID", "ELEVENLABS_VOICE_ID")


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Per-source values consulted when resolving the API key and voice.

    Attributes:
        cli: `api_key`/`voice_id` given as flags or at the hidden prompt.
        secure: `api_key` read from the keyring.
        env: Raw environment entries such as `ELEVENLABS_API_KEY`.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResolvedRuntime:
    """Runtime values resolved across CLI, secure storage, env, and config."""

    voice_id: str
    api_key: str | None = None
    api_key_source: str = "none"


@dataclass(slots=True)
class LinkinLarkConfig:
    """Runtime configuration for one conversion run.

    Attributes:
        input_source: HTTP(S) URL or local PDF path.
        output_dir: Directory receiving chapter MP3 files and the state file.
        voice_id: ElevenLabs voice identifier.
        model_id: ElevenLabs model identifier.
        api_key: Optional API key; normally resolved at runtime instead.
        max_concurrent: Concurrency cap for in-flight speech requests.
        requests_per_interval: Request starts allowed per `interval_seconds`.
        interval_seconds: Sliding-window length for request starts.
        max_retries: Retries allowed per speech request after the first attempt.
        chunk_size_chars: Per-request character ceiling.
        pages_per_chapter: Page grouping for PDFs without an outline.
        request_timeout_seconds: Per-request HTTP timeout.
        resume: Continue a previous unfinished run.
        force: Discard a previous unfinished run and start over.
        dry_run: Report the plan without calling the speech API.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    input_source: str
    output_dir: Path = _DEFAULT_OUTPUT_DIR
    voice_id: str = DEFAULT_VOICE_ID
    model_id: str = DEFAULT_MODEL_ID
    api_key: str | None = None
    max_concurrent: int = 3
    requests_per_interval: int = 1
    interval_seconds: float = 1.2
    max_retries: int = 3
    chunk_size_chars: int = DEFAULT_MAX_CHARS
    pages_per_chapter: int = 10
    request_timeout_seconds: float = 60.0
    resume: bool = False
    force: bool = False
    dry_run: bool = False
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate configuration values before any parsing or network call."""

        self._require_non_empty(self.input_source, "input_source")
        self._require_non_empty(self.voice_id, "voice_id")
        self._require_non_empty(self.model_id, "model_id")
        for field_name in (
            "max_concurrent",
            "requests_per_interval",
            "max_retries",
            "chunk_size_chars",
            "pages_per_chapter",
        ):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"`{field_name}` must be an integer >= 1.")
        for field_name in ("interval_seconds", "request_timeout_seconds"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
                raise ConfigurationError(f"`{field_name}` must be a number > 0.")
        if self.resume and self.force:
            raise ConfigurationError(
                "`--resume` and `--force` cannot be used together.",
                hint="Use `--resume` to continue or `--force` to start over.",
            )

    def resolved_runtime(self, sources: RuntimeConfigSources | None = None) -> ResolvedRuntime:
        """Resolve API key and voice with deterministic source precedence.

        The first non-blank value wins, checked in the order CLI flags, keyring,
        environment, then the config field itself.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources
        voice_id, _ = self._resolve_value("voice_id", _VOICE_ENV_KEYS, self.voice_id, resolved_sources)
        api_key, api_key_source = self._resolve_value(
            "api_key", _API_KEY_ENV_KEYS, self.api_key, resolved_sources
        )
        if voice_id is None:
            raise ConfigurationError("`voice_id` must be a non-empty string.")
        return ResolvedRuntime(voice_id=voice_id, api_key=api_key, api_key_source=api_key_source)

    @staticmethod
    def _resolve_value(
        key: str,
        env_keys: tuple[str, ...],
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> tuple[str | None, str]:
        """Return `(value, source label)` for the first source defining `key`."""

        cli_value = _normalized_lookup(sources.cli, key)
        if cli_value is not None:
            return cli_value, "cli"

        secure_value = _normalized_lookup(sources.secure, key)
        if secure_value is not None:
            return secure_value, "secure"

        for env_key in env_keys:
            env_value = _normalized_lookup(sources.env, env_key)
            if env_value is not None:
                return env_value, "env"

        normalized_default = normalize_optional_string(default_value)
        if normalized_default is None:
            return None, "none"
        return normalized_default, "config"

    @staticmethod
    def _require_non_empty(value: object, field_name: str) -> None:
        """Validate that string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(f"`{field_name}` must be a non-empty string.")


def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
    """Return a stripped mapping value for a key or `None` when missing/blank."""

    if key not in mapping:
        return None
    return normalize_optional_string(mapping.get(key))


class ConfigLoader:
    """Factory methods for creating `LinkinLarkConfig` from external sources."""

    _REQUIRED_YAML_KEYS = frozenset({"input_source"})
    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "input_source",
            "output_dir",
            "voice_id",
            "model_id",
            "api_key",
            "max_concurrent",
            "requests_per_interval",
            "interval_seconds",
            "max_retries",
            "chunk_size_chars",
            "pages_per_chapter",
            "request_timeout_seconds",
            "resume",
            "force",
            "dry_run",
        }
    )
    _INT_KEYS = (
        "max_concurrent",
        "requests_per_interval",
        "max_retries",
        "chunk_size_chars",
        "pages_per_chapter",
    )
    _FLOAT_KEYS = ("interval_seconds", "request_timeout_seconds")
    _BOOL_KEYS = ("resume", "force", "dry_run")
    _RUNTIME_ENV_KEYS = frozenset(_API_KEY_ENV_KEYS + _VOICE_ENV_KEYS)

    @staticmethod
    def from_yaml(path: Path) -> LinkinLarkConfig:
        """Create a validated config from a YAML file."""

        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config file `{path}`: {exc}") from exc
        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ConfigurationError(f"YAML config `{path}` must contain a top-level mapping.")
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(
        env: Mapping[str, str] | None = None,
        input_source: str | None = None,
    ) -> LinkinLarkConfig:
        """Create a validated config from environment variables.

        `input_source` overrides `LINKIN_LARK_INPUT_SOURCE` when given.
        `ELEVENLABS_MIN_INTERVAL` is read in milliseconds.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env

        source = normalize_optional_string(input_source) or ConfigLoader._optional_env_string(
            env_map, "LINKIN_LARK_INPUT_SOURCE"
        )
        if source is None:
            raise ConfigurationError(
                "An input source is required.",
                hint="Pass a URL or PDF path, or set `LINKIN_LARK_INPUT_SOURCE`.",
            )

        config = LinkinLarkConfig(input_source=source)
        output_dir = ConfigLoader._optional_env_string(env_map, "LINKIN_LARK_OUTPUT_DIR")
        if output_dir is not None:
            config.output_dir = Path(output_dir)
        config.model_id = (
            ConfigLoader._optional_env_string(env_map, "LINKIN_LARK_MODEL_ID") or config.model_id
        )

        int_env_keys = {
            "max_concurrent": ("LINKIN_LARK_MAX_CONCURRENT", "ELEVENLABS_MAX_CONCURRENT"),
            "requests_per_interval": ("LINKIN_LARK_REQUESTS_PER_INTERVAL",),
            "max_retries": ("LINKIN_LARK_MAX_RETRIES", "ELEVENLABS_MAX_RETRIES"),
            "chunk_size_chars": ("LINKIN_LARK_CHUNK_SIZE_CHARS",),
            "pages_per_chapter": ("LINKIN_LARK_PAGES_PER_CHAPTER",),
        }
        for field_name, env_keys in int_env_keys.items():
            for env_key in env_keys:
                parsed = ConfigLoader._optional_env_positive_int(env_map, env_key)
                if parsed is not None:
                    setattr(config, field_name, parsed)
                    break

        interval = ConfigLoader._optional_env_positive_float(env_map, "LINKIN_LARK_INTERVAL_SECONDS")
        if interval is None:
            interval_ms = ConfigLoader._optional_env_positive_float(
                env_map, "ELEVENLABS_MIN_INTERVAL"
            )
            if interval_ms is not None:
                interval = interval_ms / 1000.0
        if interval is not None:
            config.interval_seconds = interval
        timeout = ConfigLoader._optional_env_positive_float(
            env_map, "LINKIN_LARK_REQUEST_TIMEOUT_SECONDS"
        )
        if timeout is not None:
            config.request_timeout_seconds = timeout

        config.resume = ConfigLoader._optional_env_boolean(env_map, "LINKIN_LARK_RESUME") or False
        config.force = ConfigLoader._optional_env_boolean(env_map, "LINKIN_LARK_FORCE") or False
        config.dry_run = ConfigLoader._optional_env_boolean(env_map, "LINKIN_LARK_DRY_RUN") or False
        config.runtime_sources = RuntimeConfigSources(env=ConfigLoader.runtime_env(env_map))
        config.validate()
        return config

    @staticmethod
    def runtime_env(env: Mapping[str, str]) -> dict[str, str]:
        """Return the non-blank runtime-precedence values from an environment mapping."""

        return {
            key: value
            for key, value in env.items()
            if key in ConfigLoader._RUNTIME_ENV_KEYS
            and normalize_optional_string(value) is not None
        }

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> LinkinLarkConfig:
        """Build a validated config from a parsed mapping payload."""

        ConfigLoader._validate_yaml_keys(payload, source_label)

        input_source = normalize_optional_string(payload["input_source"])
        if input_source is None:
            raise ConfigurationError(f"{source_label} requires non-empty `input_source`.")
        config = LinkinLarkConfig(input_source=input_source)

        output_dir = ConfigLoader._optional_non_empty_string(payload, "output_dir")
        if output_dir is not None:
            config.output_dir = Path(output_dir)
        config.voice_id = ConfigLoader._optional_non_empty_string(payload, "voice_id") or config.voice_id
        config.model_id = ConfigLoader._optional_non_empty_string(payload, "model_id") or config.model_id
        config.api_key = ConfigLoader._optional_non_empty_string(payload, "api_key")

        for key in ConfigLoader._INT_KEYS:
            if key in payload:
                parsed_int = parse_positive_int(payload[key])
                if parsed_int is None:
                    raise ConfigurationError(
                        f"{source_label} field `{key}` must be a positive integer."
                    )
                setattr(config, key, parsed_int)
        for key in ConfigLoader._FLOAT_KEYS:
            if key in payload:
                parsed_float = parse_positive_float(payload[key])
                if parsed_float is None:
                    raise ConfigurationError(
                        f"{source_label} field `{key}` must be a positive number."
                    )
                setattr(config, key, parsed_float)
        for key in ConfigLoader._BOOL_KEYS:
            if key in payload:
                parsed_bool = parse_permissive_boolean(payload[key])
                if parsed_bool is None:
                    raise ConfigurationError(
                        f"{source_label} field `{key}` must be a boolean value "
                        "(`true`/`false`, `1`/`0`, `yes`/`no`)."
                    )
                setattr(config, key, parsed_bool)

        config.validate()
        return config

    @staticmethod
    def _validate_yaml_keys(payload: Mapping[str, Any], source_label: str) -> None:
        """Validate supported and required YAML keys."""

        unknown = sorted(str(key) for key in set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ConfigurationError(f"{source_label} includes unsupported key(s): {key_list}.")

        missing = sorted(key for key in ConfigLoader._REQUIRED_YAML_KEYS if key not in payload)
        if missing:
            key_list = ", ".join(missing)
            raise ConfigurationError(f"{source_label} is missing required key(s): {key_list}.")

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_env_string(env: Mapping[str, str], key: str) -> str | None:
        """Read and normalize optional string environment variable values."""

        if key not in env:
            return None
        return normalize_optional_string(env.get(key))

    @staticmethod
    def _optional_env_positive_int(env: Mapping[str, str], key: str) -> int | None:
        """Read an optional positive integer from environment mapping."""

        raw_value = ConfigLoader._optional_env_string(env, key)
        if raw_value is None:
            return None
        parsed = parse_positive_int(raw_value)
        if parsed is None:
            raise ConfigurationError(f"Environment variable `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_env_positive_float(env: Mapping[str, str], key: str) -> float | None:
        """Read an optional positive number from environment mapping."""

        raw_value = ConfigLoader._optional_env_string(env, key)
        if raw_value is None:
            return None
        parsed = parse_positive_float(raw_value)
        if parsed is None:
            raise ConfigurationError(f"Environment variable `{key}` must be a positive number.")
        return parsed

    @staticmethod
    def _optional_env_boolean(env: Mapping[str, str], key: str) -> bool | None:
        """Read an optional boolean from environment mapping."""

        if key not in env:
            return None
        parsed = parse_permissive_boolean(env.get(key))
        if parsed is None:
            raise ConfigurationError(
                f"Environment variable `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed
