"""
Core processing modules for subscription detection.

This package contains:
- aggregator: Totals, category rollup and what-if recomputation
- config: Application configuration and settings
- db: SQLite key/value storage
- exceptions: Custom exception classes
- exporters: Excel report export
- history: Persisted analysis history
- logger: Logging configuration
- normalize: Statement text extraction (CSV/TXT/PDF)
- schema: Pydantic models for data validation
- session: Login/credit session state
"""
