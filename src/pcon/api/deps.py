"""FastAPI dependencies."""

from __future__ import annotations

from pcon.engine import ConsolidationEngine

_engine: ConsolidationEngine | None = None


def init_engine() -> ConsolidationEngine:
    """Initialize the global ConsolidationEngine (called at app startup)."""
    global _engine
    _engine = ConsolidationEngine()
    return _engine


def shutdown_engine() -> None:
    """Cancel running jobs and drop the engine (called at app shutdown)."""
    global _engine
    if _engine is not None:
        _engine.shutdown()
        _engine = None


def get_engine() -> ConsolidationEngine:
    """Dependency that provides the ConsolidationEngine instance."""
    if _engine is None:
        raise RuntimeError("ConsolidationEngine not initialized, call init_engine() first")
    return _engine
