"""Command line interface for Axon."""
