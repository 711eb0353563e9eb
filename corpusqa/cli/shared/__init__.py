"""Helpers shared by CLI commands."""
