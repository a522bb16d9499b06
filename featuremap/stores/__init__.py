"""Persistent stores used across runs."""

from .analysis_cache import AnalysisCache, CacheEntry, CacheRecord

__all__ = ["AnalysisCache", "CacheEntry", "CacheRecord"]
