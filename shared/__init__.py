"""
Shared utilities for the eSawitKu API.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and response envelopes
- retry: Retry decorator for external calls
- base_service: FastAPI application shell

Do not import from service packages into shared/.
"""
