"""
SQLAlchemy ORM models for the AI proxy.

The gateway only reads these tables on the request path:
- ai_provider_global_configs: the provider catalog
- app_global_settings: singleton row with the operator defaults
- profiles: per-caller model overrides
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from aiproxy.db.database import Base


class TimestampMixin:
    """Mixin for created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )


# ==============================================================================
# Provider Catalog
# ==============================================================================


class ProviderConfigModel(Base, TimestampMixin):
    """One upstream vendor, keyed by its provider id (e.g. "Gemini")."""

    __tablename__ = "ai_provider_global_configs"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Fernet-encrypted, see aiproxy.services.ai.encryption
    api_key_encrypted: Mapped[str | None] = mapped_column(Text)

    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # {"text": [...], "image": [...], "chat": [...], "embedding": [...]}
    models: Mapped[dict | None] = mapped_column(JSON)

    base_url: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)


class GlobalSettingsModel(Base, TimestampMixin):
    """Process-wide fallback settings. Exactly one row, id=1."""

    __tablename__ = "app_global_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    active_ai_provider: Mapped[str] = mapped_column(String(50), default="Gemini", nullable=False)
    global_default_text_model: Mapped[str | None] = mapped_column(String(255))
    global_default_image_model: Mapped[str | None] = mapped_column(String(255))
    global_default_chat_model: Mapped[str | None] = mapped_column(String(255))
    global_default_embedding_model: Mapped[str | None] = mapped_column(String(255))


# ==============================================================================
# Callers
# ==============================================================================


class ProfileModel(Base, TimestampMixin):
    """Caller profile. Only the model overrides matter to the gateway."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    assigned_ai_model_text: Mapped[str | None] = mapped_column(String(255))
    assigned_ai_model_image: Mapped[str | None] = mapped_column(String(255))
