"""
crossproof - cross-backend proof validation and consistency engine.
"""

__version__ = "0.1.0"
