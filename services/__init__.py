"""
Service layer for business logic.

This package contains service classes that orchestrate the statement
analysis pipeline (normalize, classify, aggregate, record) and the
credit purchase flow.
"""
