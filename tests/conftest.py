"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before anything imports the settings module.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")

# Keep the decision log quiet; tests that inspect it raise their logger's level.
os.environ.setdefault("LOG_LEVEL", "ERROR")
os.environ.setdefault("GATE_SINK_URL", "http://sink.test")
os.environ.setdefault("DRIVER_GATE_URL", "http://gate.test")
