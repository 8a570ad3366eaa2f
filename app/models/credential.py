"""Upstream OAuth credentials.

Each site has two independent slots: the token obtained by the interactive
OAuth login and the token owned by the scheduler. The provider keeps a single
valid access token per site, so refreshing either slot invalidates the other.
Token values are stored Fernet-encrypted.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from app.database import Base


class _TokenColumns:
    id = Column(Integer, primary_key=True, index=True)
    site_code = Column(String(50), nullable=False, unique=True, index=True)
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    token_type = Column(String(20), nullable=False, default="Bearer")
    scopes = Column(String(255), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class OAuthToken(_TokenColumns, Base):
    """Credential obtained through the operator's OAuth login."""

    __tablename__ = "oauth_tokens"

    def __repr__(self):
        return f"<OAuthToken(site_code='{self.site_code}', expires_at={self.expires_at})>"


class BatchOAuthToken(_TokenColumns, Base):
    """Credential used by scheduled syncs."""

    __tablename__ = "oauth_tokens_batch"

    def __repr__(self):
        return f"<BatchOAuthToken(site_code='{self.site_code}', expires_at={self.expires_at})>"
