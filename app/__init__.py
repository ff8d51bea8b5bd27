"""
HTTP API layer (FastAPI routes).
"""
