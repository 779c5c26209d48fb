"""
Query Result Cache

Caches results of slow, metered warehouse queries in Redis, falling back to a
bounded in-process store whenever Redis is unavailable.
"""

__version__ = "1.0.0"
