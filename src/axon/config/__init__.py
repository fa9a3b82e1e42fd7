"""Configuration loading and validation for Axon projects.

Main components:
- ConfigLoader: Load and validate axon.config.yml files
- Environment variable substitution (${VAR_NAME} and ${VAR_NAME:-default})
- Default values shared by the models
"""
