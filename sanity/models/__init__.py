"""Dataclass models for the catalog and for flow reconciliation."""
