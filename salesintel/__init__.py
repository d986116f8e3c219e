"""
E-Commerce Sales Intelligence

Reproducible, point-in-time analytics over an e-commerce order snapshot.
"""

__version__ = "1.0.0"
