"""Unclaimed-money discovery: source adapters, match scoring, aggregation and claim forms."""

__version__ = "0.1.0"
