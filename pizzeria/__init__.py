"""
                Pizzeria Ordering Service

Async backend for a multi-branch pizzeria: branches, menu browsing,
a per-branch cart with configuration-aware merging, checkout and
order tracking.
"""

__version__ = "1.0.0"
