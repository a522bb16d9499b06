"""Configuration loading for featuremap (.featuremap.yml + environment)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .models import Stage

CONFIG_FILENAME = ".featuremap.yml"

DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
ENV_MODEL_KEYS = ("CLAUDE_CODE_SUBAGENT_MODEL", "ANTHROPIC_MODEL")
ENV_CONCURRENCY_KEY = "CONCURRENCY_LIMIT"

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    # Core languages
    "js", "jsx", "ts", "tsx", "py", "go", "rs", "java", "c", "cpp", "h", "hpp",
    "rb", "php", "cs", "swift", "kt", "m",
    # Shell & scripts
    "sh", "bash", "zsh", "bat", "ps1", "cmd", "awk", "sed",
    # Web & UI
    "html", "htm", "css", "scss", "sass", "less", "vue", "svelte", "astro",
    "twig", "ejs", "pug",
    # Configuration & data
    "json", "json5", "yaml", "yml", "toml", "ini", "env", "xml", "csv", "tsv",
    # Data & query
    "sql", "graphql", "gql", "prisma",
    # Documentation
    "md", "mdx", "txt",
    # Infrastructure
    "tf", "tfvars", "hcl", "bicep",
    # Other languages
    "dart", "scala", "groovy", "lua", "perl", "pl", "pm", "r", "hs", "elm",
    "clj", "erl", "ex", "exs", "fs", "fsi", "fsx", "vb", "vbs",
)

DEFAULT_FILENAMES: tuple[str, ...] = (
    "Dockerfile",
    "Makefile",
    "docker-compose.yml",
    "docker-compose.yaml",
    ".gitignore",
    ".dockerignore",
    ".eslintignore",
    ".prettierignore",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class CredentialsError(ConfigError):
    """Raised when no credentials for the reasoning service are available."""


@dataclass
class StageSettings:
    """Per-stage request limits for the reasoning service."""

    max_tokens: int
    temperature: float
    max_retries: int


def _default_stage_settings() -> Dict[Stage, StageSettings]:
    return {
        Stage.PREFILTER: StageSettings(max_tokens=8000, temperature=0.1, max_retries=2),
        Stage.FILE: StageSettings(max_tokens=1500, temperature=0.2, max_retries=3),
        Stage.COMPONENT: StageSettings(max_tokens=2000, temperature=0.2, max_retries=3),
        Stage.GLOBAL: StageSettings(max_tokens=2500, temperature=0.2, max_retries=3),
    }


@dataclass
class LLMConfig:
    """Reasoning service settings."""

    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    sdk_max_retries: int = 5
    request_timeout: Optional[float] = None


@dataclass
class PipelineSettings:
    """Scheduling knobs for the pipeline."""

    concurrency: int = 5
    prefilter_chunk_size: int = 1000
    max_agent_turns: int = 5


@dataclass
class ScanConfig:
    """File inventory selection rules."""

    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    filenames: List[str] = field(default_factory=lambda: list(DEFAULT_FILENAMES))
    exclude_paths: List[str] = field(default_factory=list)


@dataclass
class OutputConfig:
    """Where the document and the resumable cache are written."""

    document: Optional[Path] = None
    cache: Optional[Path] = None
    toc: bool = True


@dataclass
class Credentials:
    """Authentication for the reasoning service."""

    api_key: Optional[str] = None
    auth_token: Optional[str] = None

    @property
    def present(self) -> bool:
        return bool(self.api_key or self.auth_token)


@dataclass
class FeatureMapConfig:
    """Effective settings for one run."""

    root: Path
    llm: LLMConfig = field(default_factory=LLMConfig)
    stages: Dict[Stage, StageSettings] = field(default_factory=_default_stage_settings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    scan: ScanConfig = field(default_factory=ScanConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def stage(self, stage: Stage) -> StageSettings:
        return self.stages[stage]

    def document_path(self, cwd: Path | None = None) -> Path:
        if self.output.document is not None:
            return self.output.document
        base = cwd or Path.cwd()
        return base / f"{self.root.name}-features.md"

    def cache_path(self, cwd: Path | None = None) -> Path:
        if self.output.cache is not None:
            return self.output.cache
        base = cwd or Path.cwd()
        return base / f".extract-cache-{self.root.name}.json"


def load_config(
    repo_path: Path, *, environ: Mapping[str, str] | None = None
) -> FeatureMapConfig:
    """Load configuration for ``repo_path`` from disk and the environment."""
    env = os.environ if environ is None else environ
    root = repo_path.expanduser().resolve()
    config = FeatureMapConfig(root=root)

    config_file = root / CONFIG_FILENAME
    if config_file.exists():
        data = _read_config(config_file)
        _apply_file_settings(config, data)

    _apply_environment(config, env)
    return config


def resolve_credentials(environ: Mapping[str, str] | None = None) -> Credentials:
    """Return reasoning-service credentials or raise :class:`CredentialsError`."""
    env = os.environ if environ is None else environ
    credentials = Credentials(
        api_key=env.get("ANTHROPIC_API_KEY") or None,
        auth_token=env.get("ANTHROPIC_AUTH_TOKEN") or None,
    )
    if not credentials.present:
        raise CredentialsError(
            "Missing ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN environment variable."
        )
    return credentials


def parse_extensions(raw: str) -> List[str]:
    """Parse a ``--exts=.go,.ts`` style list into bare extensions."""
    result: List[str] = []
    for part in raw.split(","):
        cleaned = part.strip().lstrip(".")
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _apply_file_settings(config: FeatureMapConfig, data: Dict[str, Any]) -> None:
    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        config.llm.model = _as_str(llm_data.get("model")) or config.llm.model
        config.llm.base_url = _as_str(llm_data.get("base_url")) or config.llm.base_url
        sdk_retries = _as_int(llm_data.get("sdk_max_retries"))
        if sdk_retries is not None:
            config.llm.sdk_max_retries = max(0, sdk_retries)
        config.llm.request_timeout = _as_float(llm_data.get("request_timeout"))

    stages_data = _as_dict(data.get("stages"))
    for stage in Stage:
        stage_data = _as_dict(stages_data.get(stage.value))
        if not stage_data:
            continue
        settings = config.stages[stage]
        max_tokens = _as_int(stage_data.get("max_tokens"))
        if max_tokens is not None and max_tokens > 0:
            settings.max_tokens = max_tokens
        temperature = _as_float(stage_data.get("temperature"))
        if temperature is not None:
            settings.temperature = temperature
        max_retries = _as_int(stage_data.get("max_retries"))
        if max_retries is not None:
            settings.max_retries = max(0, max_retries)

    pipeline_data = _as_dict(data.get("pipeline"))
    if pipeline_data:
        concurrency = _as_int(pipeline_data.get("concurrency"))
        if concurrency is not None:
            config.pipeline.concurrency = _positive(concurrency, "pipeline.concurrency")
        chunk_size = _as_int(pipeline_data.get("prefilter_chunk_size"))
        if chunk_size is not None:
            config.pipeline.prefilter_chunk_size = _positive(
                chunk_size, "pipeline.prefilter_chunk_size"
            )
        turns = _as_int(pipeline_data.get("max_agent_turns"))
        if turns is not None:
            config.pipeline.max_agent_turns = _positive(turns, "pipeline.max_agent_turns")

    scan_data = _as_dict(data.get("scan"))
    if scan_data:
        if "extensions" in scan_data:
            config.scan.extensions = [
                ext.lstrip(".") for ext in _as_str_list(scan_data.get("extensions"))
            ]
        if "filenames" in scan_data:
            config.scan.filenames = _as_str_list(scan_data.get("filenames"))
        config.scan.exclude_paths = _as_str_list(scan_data.get("exclude_paths"))

    output_data = _as_dict(data.get("output"))
    if output_data:
        document = _as_str(output_data.get("document"))
        if document:
            config.output.document = _resolve_against(config.root, document)
        cache = _as_str(output_data.get("cache"))
        if cache:
            config.output.cache = _resolve_against(config.root, cache)
        toc = output_data.get("toc")
        if isinstance(toc, bool):
            config.output.toc = toc


def _apply_environment(config: FeatureMapConfig, env: Mapping[str, str]) -> None:
    for key in ENV_MODEL_KEYS:
        value = env.get(key)
        if value:
            config.llm.model = value
            break
    base_url = env.get("ANTHROPIC_BASE_URL")
    if base_url:
        config.llm.base_url = base_url
    raw_concurrency = env.get(ENV_CONCURRENCY_KEY)
    if raw_concurrency:
        concurrency = _as_int(raw_concurrency)
        if concurrency is None:
            raise ConfigError(f"{ENV_CONCURRENCY_KEY} must be an integer, got {raw_concurrency!r}")
        config.pipeline.concurrency = _positive(concurrency, ENV_CONCURRENCY_KEY)


def _resolve_against(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (root / path)


def _positive(value: int, name: str) -> int:
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "Credentials",
    "CredentialsError",
    "DEFAULT_EXTENSIONS",
    "DEFAULT_FILENAMES",
    "DEFAULT_MODEL",
    "FeatureMapConfig",
    "LLMConfig",
    "OutputConfig",
    "PipelineSettings",
    "ScanConfig",
    "StageSettings",
    "load_config",
    "parse_extensions",
    "resolve_credentials",
]
