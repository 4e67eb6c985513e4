"""
BackChannel: locally stored feedback packages resolved by page URL.
"""

__version__ = "0.1.0"
