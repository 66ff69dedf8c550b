"""ghdeck - a terminal dashboard for GitHub pull requests, issues and notifications."""

__version__ = "0.1.0"
