"""NavVault - tasks, calendar and activity logging in a plain-text vault."""

__version__ = "0.1.0"
