"""Vault module - markdown layout, frontmatter and the task line grammar.

Project notes are ordinary Obsidian markdown files. Tasks are stored as
single lines inside them and found again by the id embedded in each line.
"""

from navvault.vault.frontmatter import parse_frontmatter, project_metadata
from navvault.vault.projects import ProjectFileScanner

__all__ = [
    "ProjectFileScanner",
    "parse_frontmatter",
    "project_metadata",
]
