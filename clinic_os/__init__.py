"""Clinic appointment scheduling client."""

__version__ = "0.1.0"
