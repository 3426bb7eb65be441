"""Effective configuration from per-user overrides and environment defaults."""
