"""
Redis-backed caches: live-usage entries and previous-value snapshots.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
