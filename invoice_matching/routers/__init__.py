"""API routers."""

from invoice_matching.routers import matches

__all__ = ["matches"]
