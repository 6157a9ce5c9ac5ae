"""
Splan backend package.

This package provides a FastAPI application for goal, sprint and task
planning with an AI assistant, backed by SQLAlchemy and an optional
Redis cache, plus a small HTTP client for the same API.
"""
