"""Storefront order service: order orchestration with ERP sync and retry."""

__version__ = "1.0.0"
