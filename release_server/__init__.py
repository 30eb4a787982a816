"""Signed release distribution server for self-updating applications."""

__version__ = "1.0.0"
