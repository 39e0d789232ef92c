"""Core configuration, dependencies and logging helpers."""
