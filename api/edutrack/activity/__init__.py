"""Append-only learning activity history."""
