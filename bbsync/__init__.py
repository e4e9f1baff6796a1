"""Bulk clone/update of Bitbucket Server repositories."""

__version__ = "0.3.0"
