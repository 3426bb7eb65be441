"""Relational store access and per-entity stores."""
