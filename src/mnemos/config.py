"""mnemos configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (MNEMOS_EMBEDDING_MODEL, MNEMOS_EMBEDDING_PROVIDER)
  3. Per-project mnemos.yaml  (next to the database)
  4. Global ~/.mnemos/config.yaml  (defaults only, no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".mnemos"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "mnemos.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or default_budget.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "ingest", "indexer", "retrieval", "assembly"]
)

_PROVIDERS: frozenset[str] = frozenset(["remote", "stub"])


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
    """Embedding provider configuration (mnemos.yaml: embedding:)."""

    provider: str = "remote"        # remote | stub
    model: str = "openai/text-embedding-3-small"
    dimensions: int = 256           # stub embedder only
    timeout: float = 30.0
    max_retries: int = 2
    backoff_base: float = 0.5
    backoff_max: float = 8.0


@dataclass
class ChunkingCfg:
    """Chunk window size and overlap in characters (mnemos.yaml: chunking:)."""

    max_chars: int = 1_200
    overlap: int = 150


@dataclass
class IngestCfg:
    """Size ceilings enforced before anything is queued (mnemos.yaml: ingest:)."""

    max_text_chars: int = 2_000_000
    max_document_bytes: int = 30 * 1024 * 1024
    max_pages: int = 2_000


@dataclass
class IndexerCfg:
    """Background indexing configuration (mnemos.yaml: indexer:)."""

    workers: int = 1
    max_concurrent_embeddings: int = 4
    batch_size: int = 16
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    poll_interval: float = 2.0


@dataclass
class RetrievalCfg:
    """Hybrid retrieval configuration (mnemos.yaml: retrieval:)."""

    top_k: int = 5
    lexical_weight: float = 0.3
    vector_weight: float = 0.7
    candidate_limit: int = 200
    min_vector_score: float = 0.0
    temporal_filter: bool = True
    track_access: bool = True


@dataclass
class AssemblyCfg:
    """Context budgets in characters (mnemos.yaml: assembly:).

    The assembler only enforces the budget it is given; choosing between
    these two is the caller's policy.
    """

    default_budget: int = 6_000
    complex_budget: int = 12_000


@dataclass
class MnemosConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    indexer: IndexerCfg = field(default_factory=IndexerCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    assembly: AssemblyCfg = field(default_factory=AssemblyCfg)


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
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate(cfg: MnemosConfig) -> None:
    """Raise ConfigError for values the engine cannot run with."""
    if cfg.embedding.provider not in _PROVIDERS:
        raise ConfigError(
            f"embedding.provider must be one of {sorted(_PROVIDERS)}, "
            f"got '{cfg.embedding.provider}'"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError("embedding.dimensions must be >= 1")
    if cfg.chunking.max_chars < 1:
        raise ConfigError("chunking.max_chars must be >= 1")
    if cfg.chunking.overlap < 0:
        raise ConfigError("chunking.overlap must be >= 0")
    if cfg.indexer.workers < 1 or cfg.indexer.max_concurrent_embeddings < 1:
        raise ConfigError("indexer.workers and indexer.max_concurrent_embeddings must be >= 1")
    if cfg.indexer.batch_size < 1 or cfg.indexer.max_attempts < 1:
        raise ConfigError("indexer.batch_size and indexer.max_attempts must be >= 1")
    if cfg.retrieval.lexical_weight < 0 or cfg.retrieval.vector_weight < 0:
        raise ConfigError("retrieval weights must be >= 0")
    if cfg.retrieval.lexical_weight + cfg.retrieval.vector_weight == 0:
        raise ConfigError("retrieval.lexical_weight and retrieval.vector_weight cannot both be 0")


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


def _cfg_from_dict(data: dict[str, Any]) -> MnemosConfig:
    """Build a *MnemosConfig* from a merged raw YAML dict."""
    cfg = MnemosConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        d = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            provider=str(e.get("provider", d.provider)),
            model=str(e.get("model", d.model)),
            dimensions=int(e.get("dimensions", d.dimensions)),
            timeout=float(e.get("timeout", d.timeout)),
            max_retries=int(e.get("max_retries", d.max_retries)),
            backoff_base=float(e.get("backoff_base", d.backoff_base)),
            backoff_max=float(e.get("backoff_max", d.backoff_max)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            max_chars=int(c.get("max_chars", cfg.chunking.max_chars)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            max_text_chars=int(i.get("max_text_chars", cfg.ingest.max_text_chars)),
            max_document_bytes=int(
                i.get("max_document_bytes", cfg.ingest.max_document_bytes)
            ),
            max_pages=int(i.get("max_pages", cfg.ingest.max_pages)),
        )

    if "indexer" in data:
        x = data["indexer"] or {}
        d = cfg.indexer
        cfg.indexer = IndexerCfg(
            workers=int(x.get("workers", d.workers)),
            max_concurrent_embeddings=int(
                x.get("max_concurrent_embeddings", d.max_concurrent_embeddings)
            ),
            batch_size=int(x.get("batch_size", d.batch_size)),
            max_attempts=int(x.get("max_attempts", d.max_attempts)),
            backoff_base=float(x.get("backoff_base", d.backoff_base)),
            backoff_max=float(x.get("backoff_max", d.backoff_max)),
            poll_interval=float(x.get("poll_interval", d.poll_interval)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", d.top_k)),
            lexical_weight=float(r.get("lexical_weight", d.lexical_weight)),
            vector_weight=float(r.get("vector_weight", d.vector_weight)),
            candidate_limit=int(r.get("candidate_limit", d.candidate_limit)),
            min_vector_score=float(r.get("min_vector_score", d.min_vector_score)),
            temporal_filter=bool(r.get("temporal_filter", d.temporal_filter)),
            track_access=bool(r.get("track_access", d.track_access)),
        )

    if "assembly" in data:
        a = data["assembly"] or {}
        cfg.assembly = AssemblyCfg(
            default_budget=int(a.get("default_budget", cfg.assembly.default_budget)),
            complex_budget=int(a.get("complex_budget", cfg.assembly.complex_budget)),
        )

    return cfg


def _apply_env_overrides(cfg: MnemosConfig) -> MnemosConfig:
    """Apply MNEMOS_* environment variable overrides."""
    if model := os.environ.get("MNEMOS_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if provider := os.environ.get("MNEMOS_EMBEDDING_PROVIDER"):
        cfg.embedding.provider = provider
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> MnemosConfig:
    """Load and return a merged *MnemosConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *mnemos.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a
            value is out of range.
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

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    validate(cfg)
    return cfg
