"""Consent workflow engine: session state, stage components and timers."""
