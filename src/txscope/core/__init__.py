"""Configuration helpers."""

from .config import TransactionSettings, build_engine

__all__ = ["TransactionSettings", "build_engine"]
