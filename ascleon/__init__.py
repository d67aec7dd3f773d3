"""Ascleon rural telehealth assistant backend."""

__version__ = "0.1.0"
