"""
gridcache: a persisted in-memory row cache backed by a background storage worker.
"""

__version__ = "0.1.0"
