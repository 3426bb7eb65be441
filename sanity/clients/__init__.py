"""Thin async clients for the remote services."""
