"""Pytest configuration shared across all test modules.

This file is loaded by pytest before any test module, so the environment
below is in place before settings are first imported.
"""

import os

# CRITICAL: Set this before any imports that might load settings
# This keeps local .env files from leaking into tests
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")

# Deterministic admission behavior unless a test overrides it
os.environ.setdefault("RATE_LIMIT_CLEANUP_PROBABILITY", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")
