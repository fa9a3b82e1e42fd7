"""Axon CLI commands."""
