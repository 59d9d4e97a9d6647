"""
Shared utilities for the rules worker.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with work correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service scaffold (health, metrics, error handlers)
- test_helpers: In-memory store and factories for tests
"""
