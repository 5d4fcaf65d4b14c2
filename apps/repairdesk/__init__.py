"""Repair desk service order API."""
