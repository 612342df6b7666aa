"""Maintenance tools for the encrypted account vault."""
