"""CLI module for memochat."""
