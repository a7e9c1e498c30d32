"""Logging and terminal rendering."""
