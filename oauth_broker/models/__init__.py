"""
ORM models
"""

from oauth_broker.models.base import TimestampMixin
from oauth_broker.models.oauth_connection import OAuthConnection
from oauth_broker.models.user import User

__all__ = [
    "TimestampMixin",
    "OAuthConnection",
    "User",
]
