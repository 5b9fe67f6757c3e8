"""
Repo Sync - Mirror a templated subtree of one git repository into another.

This package clones a source and a destination repository, copies a source
subtree into the destination (optionally rendering mustache templates), and
commits and pushes the result only when something actually changed.
"""

__version__ = "1.0.0"
