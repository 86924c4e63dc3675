"""
WattWise: energy usage ingestion and daily/weekly/monthly rollups.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
