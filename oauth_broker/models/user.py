"""
Local user account
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oauth_broker.core.database import Base
from oauth_broker.models.base import TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from oauth_broker.models.oauth_connection import OAuthConnection  # pragma: no cover


class User(Base, TimestampMixin):
    """
    Local user.

    The OAuth flows only look users up (by id, email, username) and create
    them on first login; other fields belong to the account system.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    flag_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    flag_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    oauth_connections: Mapped[List["OAuthConnection"]] = relationship(
        "OAuthConnection",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return bool(self.flag_enabled)
