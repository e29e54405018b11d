"""AUMA SAFE Act compliance gate."""

__version__ = "1.0.0"
