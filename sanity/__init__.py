"""Connector sanity check: catalog verification runs and E2E flow reconciliation."""

__version__ = "0.1.0"
