"""Connector status rollup."""
