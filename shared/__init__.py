"""
Shared utilities for the GitHub Access Governor.

This package aggregates common building blocks consumed by all services:

- config: Settings via pydantic-settings
- logging: Structured logging with request correlation
- errors: Canonical error types and responses
- clock: Injectable time source
- base_service: FastAPI service scaffold

Do not import from service_* packages into shared/.
"""
