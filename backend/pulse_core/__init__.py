"""Core logic for indicators, scoring, signal generation and models.

This package contains pure business logic with no I/O dependencies
(no database, Redis, or network access). The I/O side lives in pulse/
and talks to this package through injected callbacks.
"""
