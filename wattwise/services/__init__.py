"""
Domain services: delta estimation, bucket folding, rollups and scheduling.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
