"""Storage for simulated HTTP log lines."""

from .log_store import LogStore

__all__ = ["LogStore"]
