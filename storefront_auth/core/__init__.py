"""Configuration, errors and request dependencies."""
