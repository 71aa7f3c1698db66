"""
RFP Scoring Utils - shared infrastructure for the scoring engine.

Submodules:
- core: Logging, errors, JSON validation, activity events
- llm: Chat-completion HTTP client
- db: Score persistence (PostgreSQL / in-memory mock)
- vault: Secrets and configuration
"""
