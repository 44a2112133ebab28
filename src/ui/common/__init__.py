"""Shared UI styling."""
