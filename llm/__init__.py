"""
LLM integration for subscription classification.

This package contains:
- classify: Statement classification and response normalization
- client: Gemini REST client wrapper
- prompts: System and user prompt builders
"""
