"""
Pollwise - statement weighting and voting sessions for deliberation polls

This package provides:
- Statement weight calculation (clustering and cold start modes)
- A PostgreSQL-backed weight cache with event-driven invalidation
- Batched, resumable voting sessions
- An admin CLI for the weight cache
"""

__version__ = "0.1.0"
