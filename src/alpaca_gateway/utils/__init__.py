"""
Utility helpers.
"""

from .network import validate_endpoint

__all__ = ["validate_endpoint"]
