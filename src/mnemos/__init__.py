"""mnemos: local-first hybrid retrieval over scoped memories and documents."""

from mnemos.config import MnemosConfig, load_config
from mnemos.engine import Engine

__all__ = ["Engine", "MnemosConfig", "load_config"]
