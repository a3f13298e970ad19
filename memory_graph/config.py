"""Configuration loading from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .backends import DEFAULT_MEMORY_DIR

# Same strictness as a fuzzy-search distance cutoff of 0.2
DEFAULT_SEARCH_THRESHOLD = 0.8


@dataclass
class MemoryGraphConfig:
    """Top-level memory graph configuration."""

    memory_dir: Path = DEFAULT_MEMORY_DIR
    backend: str = "json"
    log_level: str = "INFO"
    search_threshold: float = DEFAULT_SEARCH_THRESHOLD


def load_config() -> MemoryGraphConfig:
    """Load configuration. Environment variables override defaults."""
    return MemoryGraphConfig(
        memory_dir=Path(os.getenv("MEMORY_GRAPH_DIR", str(DEFAULT_MEMORY_DIR))).expanduser(),
        backend=os.getenv("MEMORY_GRAPH_BACKEND", "json"),
        log_level=os.getenv("MEMORY_GRAPH_LOG_LEVEL", "INFO"),
        search_threshold=float(
            os.getenv("MEMORY_GRAPH_SEARCH_THRESHOLD", DEFAULT_SEARCH_THRESHOLD)
        ),
    )
