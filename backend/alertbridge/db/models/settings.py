from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from alertbridge.db.base import Base, JSONDocument


class UserSettings(Base):
    """Per-user automation settings and encrypted broker credentials"""
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Master switch for the direct auto-trade path
    auto_execute_enabled = Column(Boolean, default=False, nullable=False)

    # Fernet token of the credentials JSON document
    fyers_credentials = Column(Text, nullable=True)

    # User-level defaults shown on the settings page
    risk_params = Column(JSONDocument, default=dict)
    trading_hours = Column(JSONDocument, default=dict)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
