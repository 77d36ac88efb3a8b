"""CLI module for workstudio."""
