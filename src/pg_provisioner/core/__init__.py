"""Core building blocks: configuration, errors and tracking hooks."""
