"""
OAuth 2.0 authentication broker
"""

__version__ = "0.1.0"
