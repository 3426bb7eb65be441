"""Bounded-concurrency batch execution."""
