"""
Backend package for the Fairfence site.

This package provides a FastAPI application that resolves runtime
configuration (remote config endpoint or environment) and serves the
canonical fence pricing table with a static fallback.
"""
