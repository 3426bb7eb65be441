"""Catalog snapshot ingestion."""
