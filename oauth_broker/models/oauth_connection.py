"""
OAuth connection model

Links a local user to one provider identity, with its tokens and the last
fetched profile.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oauth_broker.core.database import Base
from oauth_broker.models.base import TimestampMixin, generate_uuid
from oauth_broker.models.types import EncryptedText

if TYPE_CHECKING:
    from oauth_broker.models.user import User  # pragma: no cover


class OAuthConnection(Base, TimestampMixin):
    """
    One (user, provider) pairing.

    - (provider, provider_user_id) is unique: a provider identity maps to one connection.
    - (user_id, provider) is unique: a user links each provider at most once.
    """

    __tablename__ = "oauth_connections"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_oauth_connections_provider_identity"),
        UniqueConstraint("user_id", "provider", name="uq_oauth_connections_user_provider"),
        Index("ix_oauth_connections_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_uuid)

    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # google | facebook | linkedin | microsoft
    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Encrypted at rest; never serialized to clients
    access_token: Mapped[str] = mapped_column(EncryptedText, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)

    # None: the token does not expire
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="oauth_connections")

    def to_public_dict(self) -> Dict[str, Any]:
        """Client-safe view (no tokens)."""
        return {
            "id": self.id,
            "provider": self.provider,
            "provider_user_id": self.provider_user_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
