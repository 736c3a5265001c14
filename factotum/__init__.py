"""Factotum: runs trees of HTTP and process steps serially or in parallel."""

__version__ = "0.1.0"
