"""Migrate Port entity ownership from the GitHub App to GitHub Ocean."""

__version__ = "1.0.0"
