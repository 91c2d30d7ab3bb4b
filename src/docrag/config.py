"""docrag configuration loader.

Priority (high to low):
  1. CLI flags              (handled at call site, not in this module)
  2. Environment variables  (DOCRAG_EMBEDDING_MODEL, DOCRAG_GENERATION_MODEL,
                             DOCRAG_LOG_LEVEL)
  3. Per-project docrag.yaml  (next to .docrag.db)
  4. Global ~/.docrag/config.yaml  (model defaults only, no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".docrag"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "docrag.yaml"

# Key names that look like credentials. Does NOT match legitimate keys such as
# max_tokens or chunk_size.
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
    ["embedding", "chunking", "retrieval", "hybrid", "limits", "generation", "logging"]
)

_DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (docrag.yaml: embedding:).

    Attributes:
        model: LiteLLM model string.
        dimensions: Required length of every vector the provider returns.
        batch_size: Maximum inputs per provider call.
        max_input_chars: Inputs longer than this are cut before sending.
        timeout: Per-call timeout in seconds.
        max_retries: Retries after the first attempt for transient failures.
        retry_delay: Base backoff delay in seconds; doubles per attempt.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100
    max_input_chars: int = 8_000
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class ChunkingCfg:
    """Chunker sizing in tokens (docrag.yaml: chunking:)."""

    chunk_size: int = 512
    chunk_overlap: int = 50
    separators: tuple[str, ...] = _DEFAULT_SEPARATORS
    min_chunk_size: int = 100
    max_chunk_size: int = 1_000


@dataclass
class RetrievalCfg:
    """Retrieval and context assembly (docrag.yaml: retrieval:)."""

    top_k: int = 5
    similarity_threshold: float = 0.7
    max_context_chunks: int = 3
    max_context_length: int = 2_000
    enable_reranking: bool = False


@dataclass
class HybridCfg:
    """Lexical + semantic score blending (docrag.yaml: hybrid:)."""

    enabled: bool = False
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3


@dataclass
class LimitsCfg:
    """Upload limits (docrag.yaml: limits:)."""

    max_file_size: int = 5 * 1024 * 1024
    max_content_length: int = 1_000_000


@dataclass
class GenerationCfg:
    """Completion model configuration (docrag.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2_000


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class DocragConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    hybrid: HybridCfg = field(default_factory=HybridCfg)
    limits: LimitsCfg = field(default_factory=LimitsCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


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

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def validate_config(cfg: DocragConfig) -> None:
    """Raise ConfigError when values are out of range or contradict each other."""
    ch = cfg.chunking
    if ch.chunk_size <= 0:
        raise ConfigError(f"chunking.chunk_size must be > 0, got {ch.chunk_size}")
    if not 0 <= ch.chunk_overlap < ch.chunk_size:
        raise ConfigError(
            f"chunking.chunk_overlap must be in [0, chunk_size), got {ch.chunk_overlap}"
        )
    if not ch.separators:
        raise ConfigError("chunking.separators must not be empty")
    if ch.min_chunk_size > ch.max_chunk_size:
        raise ConfigError(
            "chunking.min_chunk_size must not exceed chunking.max_chunk_size"
        )

    if cfg.embedding.dimensions < 1:
        raise ConfigError(
            f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}"
        )
    if cfg.embedding.batch_size < 1:
        raise ConfigError(
            f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}"
        )
    if cfg.embedding.max_retries < 0:
        raise ConfigError("embedding.max_retries must be >= 0")

    r = cfg.retrieval
    if r.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {r.top_k}")
    if not 0.0 <= r.similarity_threshold <= 1.0:
        raise ConfigError(
            "retrieval.similarity_threshold must be between 0 and 1, "
            f"got {r.similarity_threshold}"
        )
    if r.max_context_chunks < 1 or r.max_context_length < 1:
        raise ConfigError(
            "retrieval.max_context_chunks and max_context_length must be >= 1"
        )

    h = cfg.hybrid
    if h.semantic_weight < 0 or h.keyword_weight < 0:
        raise ConfigError("hybrid weights must be non-negative")
    if h.semantic_weight + h.keyword_weight == 0:
        raise ConfigError("hybrid.semantic_weight and keyword_weight cannot both be 0")
    if r.enable_reranking and not h.enabled:
        raise ConfigError(
            "retrieval.enable_reranking requires hybrid.enabled: true\n"
            "  Either enable hybrid search or turn reranking off."
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> DocragConfig:
    """Build a *DocragConfig* from a merged raw YAML dict."""
    cfg = DocragConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        d = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", d.model)),
            dimensions=int(e.get("dimensions", d.dimensions)),
            batch_size=int(e.get("batch_size", d.batch_size)),
            max_input_chars=int(e.get("max_input_chars", d.max_input_chars)),
            timeout=float(e.get("timeout", d.timeout)),
            max_retries=int(e.get("max_retries", d.max_retries)),
            retry_delay=float(e.get("retry_delay", d.retry_delay)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        d = cfg.chunking
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", d.chunk_size)),
            chunk_overlap=int(c.get("chunk_overlap", d.chunk_overlap)),
            separators=tuple(str(s) for s in c.get("separators", d.separators)),
            min_chunk_size=int(c.get("min_chunk_size", d.min_chunk_size)),
            max_chunk_size=int(c.get("max_chunk_size", d.max_chunk_size)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", d.top_k)),
            similarity_threshold=float(
                r.get("similarity_threshold", d.similarity_threshold)
            ),
            max_context_chunks=int(r.get("max_context_chunks", d.max_context_chunks)),
            max_context_length=int(r.get("max_context_length", d.max_context_length)),
            enable_reranking=bool(r.get("enable_reranking", d.enable_reranking)),
        )

    if "hybrid" in data:
        h = data["hybrid"] or {}
        d = cfg.hybrid
        cfg.hybrid = HybridCfg(
            enabled=bool(h.get("enabled", d.enabled)),
            semantic_weight=float(h.get("semantic_weight", d.semantic_weight)),
            keyword_weight=float(h.get("keyword_weight", d.keyword_weight)),
        )

    if "limits" in data:
        lim = data["limits"] or {}
        d = cfg.limits
        cfg.limits = LimitsCfg(
            max_file_size=int(lim.get("max_file_size", d.max_file_size)),
            max_content_length=int(lim.get("max_content_length", d.max_content_length)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        d = cfg.generation
        cfg.generation = GenerationCfg(
            model=str(g.get("model", d.model)),
            temperature=float(g.get("temperature", d.temperature)),
            max_tokens=int(g.get("max_tokens", d.max_tokens)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())

    return cfg


def _apply_env_overrides(cfg: DocragConfig) -> DocragConfig:
    """Apply DOCRAG_* environment variable overrides."""
    if model := os.environ.get("DOCRAG_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("DOCRAG_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("DOCRAG_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocragConfig:
    """Load and return a merged, validated *DocragConfig*.

    Applies layers in order: global, per-project, env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *docrag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or any
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    validate_config(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.docrag/config.yaml`` with defaults if it does not exist.

    The parent directory gets mode 0o700 and the file mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# docrag global configuration: model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
