"""Salewatch: daily storefront sale and release alerts."""

__version__ = "0.1.0"
