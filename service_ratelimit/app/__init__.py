"""
Rate limit service package for the Access Governor.

- app.ratelimit: the per-resource quota store and httpx response hooks.
- app.main: FastAPI application exposing quota status and admission advice.

The governor itself performs no I/O and never sleeps; the HTTP surface is a
read-mostly view over it.
"""
