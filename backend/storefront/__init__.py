"""
Storefront Orders API - post-payment order pipeline.
"""
__version__ = "1.0.0"
