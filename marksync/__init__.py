"""
marksync - keeps bookmark folders in sync with GitHub gists and repositories.
"""

__version__ = "1.0.0"
