"""
Module: gescom_kernel.models.settings
Responsibility: Key / JSON-value settings store.

Keys used by the engine: ``numbering``, ``stockSettings``,
``currencySettings``, ``invoiceSettings``, ``generalSettings``.  Values are
read by SettingsService, which tolerates damaged rows.
"""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from gescom_kernel.db.base import TrackedBase


class Setting(TrackedBase):
    """One settings-store row."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    value: Mapped[Any] = mapped_column(JSON, nullable=True)
