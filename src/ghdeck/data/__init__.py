"""Data sources for ghdeck: the GitHub API, git, the gh CLI and persisted state."""
