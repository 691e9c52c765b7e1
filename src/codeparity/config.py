"""codeparity configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CODEPARITY_EMBEDDING_MODEL, CODEPARITY_GENERATION_MODEL,
                             CODEPARITY_SOURCE_ROOT)
  3. Per-project codeparity.yaml
  4. Global ~/.codeparity/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".codeparity"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "codeparity.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or num_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["source", "collections", "chunking", "embedding", "generation", "storage", "report"]
)

SOURCE_MODES: frozenset[str] = frozenset(["snapshot", "directory"])

_STATUS_KEY_RE: re.Pattern[str] = re.compile(r"[a-z_]+")

# Unit definition patterns (matched per line, case-insensitive).
PYTHON_UNIT_PATTERN = r"^\s*class\s+([A-Za-z_]\w*)\s*\(\s*Indicator\s*\)\s*:"
CYTHON_UNIT_PATTERN = r"^\s*cdef\s+class\s+([A-Za-z_]\w*)\s*\(\s*Indicator\s*\)\s*:"
RUST_UNIT_PATTERN = r"pub\s+struct\s+([A-Za-z_]\w*Indicator)\s*\{"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class SourceCfg:
    """Where content is discovered (codeparity.yaml: source:).

    Attributes:
        root: Git repository (snapshot mode) or directory (directory mode).
        mode: 'snapshot' reads blobs from a commit; 'directory' walks the live tree.
        revision: Branch, tag or commit to snapshot (snapshot mode only).
    """

    root: str = "."
    mode: str = "snapshot"
    revision: str = "HEAD"


@dataclass
class CollectionCfg:
    """One language/file kind to collect (codeparity.yaml: collections[]).

    Attributes:
        category: Label stored with every chunk (e.g. 'python', 'rust').
        extensions: File suffixes to match, case-insensitive.
        prefixes: Optional path prefixes (relative to root); empty = anywhere.
        unit_pattern: Regex whose group 1 is a comparison unit name. None means
            the file stem is used as the unit name.
    """

    category: str
    extensions: list[str] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)
    unit_pattern: str | None = None


def _default_collections() -> list[CollectionCfg]:
    return [
        CollectionCfg(category="python", extensions=[".py"], unit_pattern=PYTHON_UNIT_PATTERN),
        CollectionCfg(category="cython", extensions=[".pyx", ".pxd"], unit_pattern=CYTHON_UNIT_PATTERN),
        CollectionCfg(category="rust", extensions=[".rs"], unit_pattern=RUST_UNIT_PATTERN),
    ]


@dataclass
class ChunkingCfg:
    max_lines: int = 300


@dataclass
class EmbeddingCfg:
    """Embedding service configuration (codeparity.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 50
    api_base: str | None = None
    timeout: float = 60.0
    num_retries: int = 3


@dataclass
class GenerationCfg:
    """Completion service configuration (codeparity.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    api_base: str | None = None
    timeout: float = 120.0
    num_retries: int = 3
    max_tokens: int = 1024


@dataclass
class StorageCfg:
    database: str = ".codeparity.db"
    ledger: str = "ledger.csv"


@dataclass
class StatusCfg:
    """A pass/fail column of the parity report.

    Attributes:
        key: JSON key the model must fill ([a-z_]+).
        header: Column header in the rendered tables.
        question: What the model decides for this column.
    """

    key: str
    header: str
    question: str


def _default_statuses() -> list[StatusCfg]:
    return [
        StatusCfg(
            key="parity",
            header="Implementations Match?",
            question=(
                "Do all implementations expose the same behaviour: same inputs, "
                "same outputs, same edge-case handling?"
            ),
        ),
        StatusCfg(
            key="test_coverage",
            header="Test Coverage Parity?",
            question=(
                "Is every implementation tested at least as thoroughly as the "
                "best-tested one?"
            ),
        ),
    ]


@dataclass
class ReportCfg:
    """Parity report configuration (codeparity.yaml: report:).

    Attributes:
        top_k: Number of similar chunks retrieved as context per unit.
        output_dir: Directory for the per-unit reports.
        aggregate: Path of the aggregate report.
        link_base: Optional URL prefix turning locations into links
            (e.g. https://github.com/org/repo/blob/develop).
        statuses: Pass/fail columns requested from the model.
    """

    top_k: int = 5
    output_dir: str = "reports"
    aggregate: str = "README_comparison.md"
    link_base: str = ""
    statuses: list[StatusCfg] = field(default_factory=_default_statuses)


@dataclass
class CodeParityConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    source: SourceCfg = field(default_factory=SourceCfg)
    collections: list[CollectionCfg] = field(default_factory=_default_collections)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    report: ReportCfg = field(default_factory=ReportCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                _scan(item, f"{path}[{i}]")

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CodeParityConfig) -> None:
    """Raise ConfigError on values the pipeline cannot run with."""
    if cfg.source.mode not in SOURCE_MODES:
        raise ConfigError(
            f"source.mode must be one of {sorted(SOURCE_MODES)}, got '{cfg.source.mode}'"
        )
    if cfg.chunking.max_lines < 1:
        raise ConfigError(f"chunking.max_lines must be >= 1, got {cfg.chunking.max_lines}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.report.top_k < 1:
        raise ConfigError(f"report.top_k must be >= 1, got {cfg.report.top_k}")

    if not cfg.collections:
        raise ConfigError("collections must list at least one collection")
    categories = [c.category for c in cfg.collections]
    if len(set(categories)) != len(categories):
        raise ConfigError(f"collections contain duplicate categories: {categories}")
    for coll in cfg.collections:
        if not coll.category:
            raise ConfigError("every collection needs a category")
        if not coll.extensions:
            raise ConfigError(f"collection '{coll.category}' has no extensions")
        if coll.unit_pattern is not None:
            try:
                compiled = re.compile(coll.unit_pattern)
            except re.error as exc:
                raise ConfigError(
                    f"collection '{coll.category}' has an invalid unit_pattern: {exc}"
                ) from exc
            if compiled.groups < 1:
                raise ConfigError(
                    f"collection '{coll.category}' unit_pattern needs a capture group for the unit name"
                )

    keys = [s.key for s in cfg.report.statuses]
    if len(keys) < 2:
        raise ConfigError(f"report.statuses must list at least two statuses, got {len(keys)}")
    if len(set(keys)) != len(keys):
        raise ConfigError(f"report.statuses contain duplicate keys: {keys}")
    for key in keys:
        if not _STATUS_KEY_RE.fullmatch(key):
            raise ConfigError(f"report status key '{key}' must match [a-z_]+")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*.

    Lists are replaced, not concatenated.
    """
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _optional_str(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def _parse_collection(raw: dict[str, Any]) -> CollectionCfg:
    if "category" not in raw:
        raise ConfigError(f"collection entry is missing 'category': {raw!r}")
    return CollectionCfg(
        category=str(raw["category"]),
        extensions=_str_list(raw.get("extensions")),
        prefixes=_str_list(raw.get("prefixes")),
        unit_pattern=_optional_str(raw.get("unit_pattern")),
    )


def _parse_status(raw: dict[str, Any]) -> StatusCfg:
    if "key" not in raw:
        raise ConfigError(f"report status entry is missing 'key': {raw!r}")
    key = str(raw["key"])
    return StatusCfg(
        key=key,
        header=str(raw.get("header", key.replace("_", " ").title())),
        question=str(raw.get("question", "")),
    )


def _cfg_from_dict(data: dict[str, Any]) -> CodeParityConfig:
    """Build a *CodeParityConfig* from a merged raw YAML dict."""
    cfg = CodeParityConfig()

    if "source" in data:
        s = data["source"] or {}
        cfg.source = SourceCfg(
            root=str(s.get("root", cfg.source.root)),
            mode=str(s.get("mode", cfg.source.mode)),
            revision=str(s.get("revision", cfg.source.revision)),
        )

    if "collections" in data:
        cfg.collections = [_parse_collection(c) for c in data["collections"] or []]

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            max_lines=int(c.get("max_lines", cfg.chunking.max_lines)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            api_base=_optional_str(e.get("api_base")),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            api_base=_optional_str(g.get("api_base")),
            timeout=float(g.get("timeout", cfg.generation.timeout)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "storage" in data:
        st = data["storage"] or {}
        cfg.storage = StorageCfg(
            database=str(st.get("database", cfg.storage.database)),
            ledger=str(st.get("ledger", cfg.storage.ledger)),
        )

    if "report" in data:
        r = data["report"] or {}
        statuses = (
            [_parse_status(s) for s in r["statuses"] or []]
            if "statuses" in r
            else cfg.report.statuses
        )
        cfg.report = ReportCfg(
            top_k=int(r.get("top_k", cfg.report.top_k)),
            output_dir=str(r.get("output_dir", cfg.report.output_dir)),
            aggregate=str(r.get("aggregate", cfg.report.aggregate)),
            link_base=str(r.get("link_base", cfg.report.link_base) or ""),
            statuses=statuses,
        )

    return cfg


def _apply_env_overrides(cfg: CodeParityConfig) -> CodeParityConfig:
    """Apply CODEPARITY_* environment variable overrides."""
    if model := os.environ.get("CODEPARITY_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("CODEPARITY_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if root := os.environ.get("CODEPARITY_SOURCE_ROOT"):
        cfg.source.root = root
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CodeParityConfig:
    """Load and return a merged *CodeParityConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *codeparity.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *CodeParityConfig*.

    Raises:
        ConfigError: If a config file is malformed, the global config contains
            API-key-like fields, or a value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError, AttributeError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def validate_config(cfg: CodeParityConfig) -> None:
    """Re-validate *cfg* after CLI overrides have been applied."""
    _validate(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.codeparity/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# codeparity global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target


PROJECT_CONFIG_TEMPLATE = """\
# codeparity project configuration.
# API keys come from the environment (e.g. OPENAI_API_KEY), never from this file.

source:
  root: .                # git repository (snapshot) or directory (directory)
  mode: snapshot         # snapshot | directory
  revision: HEAD         # branch, tag or commit (snapshot mode)

collections:
  - category: python
    extensions: [.py]
    unit_pattern: '^\\s*class\\s+([A-Za-z_]\\w*)\\s*\\(\\s*Indicator\\s*\\)\\s*:'
  - category: cython
    extensions: [.pyx, .pxd]
    unit_pattern: '^\\s*cdef\\s+class\\s+([A-Za-z_]\\w*)\\s*\\(\\s*Indicator\\s*\\)\\s*:'
  - category: rust
    extensions: [.rs]
    unit_pattern: 'pub\\s+struct\\s+([A-Za-z_]\\w*Indicator)\\s*\\{'

chunking:
  max_lines: 300

embedding:
  model: openai/text-embedding-3-small
  dimensions: 1536
  batch_size: 50
  # api_base: http://localhost:11434   # local endpoint (e.g. ollama/nomic-embed-text)

generation:
  model: openai/gpt-4o

storage:
  database: .codeparity.db
  ledger: ledger.csv

report:
  top_k: 5
  output_dir: reports
  aggregate: README_comparison.md
  # link_base: https://github.com/org/repo/blob/develop
"""
