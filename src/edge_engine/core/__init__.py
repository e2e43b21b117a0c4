"""Errors and events shared across stages."""
