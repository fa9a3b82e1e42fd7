"""Configuration and release models for Axon."""
