"""Shared services for the admin API."""
