"""Git Identitree - directory-based Git identity profiles."""

__version__ = "1.2.1"
