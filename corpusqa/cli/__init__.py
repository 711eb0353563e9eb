"""CLI module for corpusqa."""
