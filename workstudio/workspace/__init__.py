"""Workspace root, path guard, tree store and file watching."""
