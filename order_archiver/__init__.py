"""
order-archiver: one-shot migration of order documents into a local archive.
"""

__version__ = "0.1.0"
