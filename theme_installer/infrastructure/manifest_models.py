"""
Pydantic models for validating the files that describe a theme on disk.

These models serve as a strict contract for a theme's ``package.json`` and
for the install record written next to each materialized theme, ensuring
that any deviation is caught at the infrastructure layer before being
passed to the application core.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..application.domain import SourceKind


class PackageJson(BaseModel):
    """
    The subset of a theme's ``package.json`` the installer relies on.

    Unknown keys (``config``, ``engines``, ``keywords``...) are kept so the
    file round-trips untouched, but only ``name`` and ``version`` are
    required.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    version: str
    description: Optional[str] = None

    @field_validator("name", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class InstallRecord(BaseModel):
    """Metadata recorded at install time so a restarted process can find
    the durable copy of a theme."""

    storage_key: str
    source_kind: SourceKind
    size_bytes: int = 0
    installed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
