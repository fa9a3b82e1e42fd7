"""Shared library code for Axon: errors, logging and terminal output."""
