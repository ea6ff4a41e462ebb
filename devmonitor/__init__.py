"""devmonitor: dev-server supervision, log classification and reversible auto-fixes."""

__version__ = "0.1.0"
