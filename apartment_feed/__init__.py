"""Apartment Feed: listing filters, city statistics and likes for a rental app."""

__version__ = "0.1.0"
