"""
Repository layer
"""
from .base import BaseRepository
from .oauth_connection import OAuthConnectionRepository
from .user import UserRepository

__all__ = [
    "BaseRepository",
    "OAuthConnectionRepository",
    "UserRepository",
]
