"""
This module defines the core domain models for the theme installer.

These classes represent the pure, technology-agnostic entities and data
structures that the application's business logic operates on, together with
the ports (interfaces) the infrastructure layer implements.
"""

import dataclasses
import enum
from abc import ABC, abstractmethod
from pathlib import Path
from typing import (
    Any, AsyncContextManager, Dict, FrozenSet, List, Mapping, Optional, Tuple
)

from .exceptions import InvalidReference


CUSTOM_THEMES = "customThemes"
ACTIVE_THEME_KEY = "active_theme"

# Never a valid theme name, used to force a limit error on limited plans
# when the final theme name is unknown before extraction.
FORCE_LIMIT_SENTINEL = "."


# --- Enumerations ---

class SourceKind(str, enum.Enum):
    """Where the bytes of an installation come from."""

    UPLOAD = "upload"
    REMOTE_REF = "remote_ref"
    LOCAL_ZIP = "local_zip"


class ArtifactClass(enum.Enum):
    """Classes of durable artifacts, each with its own key segment and ACL."""

    THEME = ("themes", "private")
    ROUTES = ("settings", "public-read")

    def __init__(self, segment: str, acl: str):
        self.segment = segment
        self.acl = acl


class InstallState(str, enum.Enum):
    """States of a single installation run."""

    RECEIVED = "received"
    QUOTA_CHECKED = "quota_checked"
    ACQUIRED = "acquired"
    NORMALIZED = "normalized"
    DURABLY_STORED = "durably_stored"
    REGISTERED = "registered"
    ACTIVATED = "activated"
    CLEANED_UP = "cleaned_up"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# --- Domain Models ---

@dataclasses.dataclass(frozen=True)
class RemoteRef:
    """A parsed ``org/repo`` reference to a remote source repository."""

    organization: str
    repository_name: str

    @classmethod
    def parse(cls, raw: str) -> "RemoteRef":
        """
        Lower-case and split a caller supplied reference.

        Raises:
            InvalidReference: If either part is missing or empty.
        """
        parts = (raw or "").strip().lower().split("/")
        if len(parts) != 2 or not all(part.strip() for part in parts):
            raise InvalidReference(
                f"Invalid theme reference '{raw}', expected 'org/repo'"
            )
        return cls(organization=parts[0].strip(), repository_name=parts[1].strip())

    @property
    def archive_name(self) -> str:
        return f"{self.repository_name}.zip"

    def __str__(self):
        return f"{self.organization}/{self.repository_name}"


@dataclasses.dataclass(frozen=True)
class InstallationRequest:
    """
    A single, immutable request to install a theme.

    Exactly one of ``ref`` and ``uploaded_bytes_path`` is populated, as
    determined by ``source_kind``.
    """

    source_kind: SourceKind
    ref: Optional[str] = None
    uploaded_bytes_path: Optional[Path] = None
    original_display_name: Optional[str] = None

    def __post_init__(self):
        wants_ref = self.source_kind is SourceKind.REMOTE_REF
        if wants_ref and (not self.ref or self.uploaded_bytes_path):
            raise ValueError("Remote installs require a ref and no file path")
        if not wants_ref and (self.ref or not self.uploaded_bytes_path):
            raise ValueError(
                f"{self.source_kind.value} installs require a file path and no ref"
            )

    @classmethod
    def remote(cls, ref: str) -> "InstallationRequest":
        return cls(source_kind=SourceKind.REMOTE_REF, ref=ref)

    @classmethod
    def upload(
        cls, path: Path, original_name: Optional[str] = None
    ) -> "InstallationRequest":
        return cls(
            source_kind=SourceKind.UPLOAD,
            uploaded_bytes_path=Path(path),
            original_display_name=original_name or Path(path).name,
        )

    @classmethod
    def local_zip(cls, path: Path) -> "InstallationRequest":
        return cls(
            source_kind=SourceKind.LOCAL_ZIP,
            uploaded_bytes_path=Path(path),
            original_display_name=Path(path).name,
        )


@dataclasses.dataclass(frozen=True)
class Workspace:
    """A per-request temporary directory and the archive path inside it."""

    root_dir: Path
    archive_path: Path


@dataclasses.dataclass(frozen=True)
class CanonicalKey:
    """
    The result of normalizing a display name.

    ``canonical_name`` is the rediscoverable theme name; ``storage_name``
    carries a random disambiguator so durable keys never collide.
    """

    canonical_name: str
    storage_name: str


@dataclasses.dataclass(frozen=True)
class ThemeManifest:
    """The validated description of a materialized theme package."""

    name: str
    package_name: str
    version: str
    path: Path
    description: Optional[str] = None
    storage_key: Optional[str] = None
    source_kind: Optional[SourceKind] = None
    size_bytes: int = 0
    warnings: Tuple[str, ...] = ()

    def to_dict(self, active: bool = False) -> Dict[str, Any]:
        return {
            "name": self.name,
            "package": {
                "name": self.package_name,
                "version": self.version,
                "description": self.description,
            },
            "active": active,
            "warnings": list(self.warnings),
        }


@dataclasses.dataclass(frozen=True)
class RegistrationResult:
    """What the registry reports after materializing a package."""

    manifest: ThemeManifest
    overridden_existing: bool


@dataclasses.dataclass(frozen=True)
class ThemePackage:
    """A theme package that has been durably stored and registered."""

    canonical_name: str
    storage_key: str
    size_bytes: int
    source_kind: SourceKind
    overridden_existing: bool


@dataclasses.dataclass(frozen=True)
class QuotaState:
    """Read-only snapshot of one capability's limits from the plan."""

    is_limited: bool = False
    allowlist: Optional[FrozenSet[str]] = None
    max_allowed: Optional[int] = None
    upgrade_message: str = "Upgrade your plan to use custom themes."


@dataclasses.dataclass(frozen=True)
class PlanConfiguration:
    """The plan limits in force for a single request."""

    capabilities: Mapping[str, QuotaState] = dataclasses.field(
        default_factory=dict
    )

    def quota_for(self, capability: str) -> QuotaState:
        return self.capabilities.get(capability, QuotaState())

    @classmethod
    def unlimited(cls) -> "PlanConfiguration":
        return cls()


@dataclasses.dataclass(frozen=True)
class DomainEvent:
    """A notification the calling layer is responsible for dispatching."""

    name: str
    payload: Dict[str, Any]


@dataclasses.dataclass(frozen=True)
class InstallOutcome:
    """The result of a successful installation."""

    package: ThemePackage
    manifest: ThemeManifest
    cache_invalidate: bool
    events: Tuple[DomainEvent, ...] = ()
    state: InstallState = InstallState.SUCCEEDED


@dataclasses.dataclass(frozen=True)
class ActivationOutcome:
    """The result of activating an installed theme."""

    manifest: ThemeManifest
    previous_theme: Optional[str]
    cache_invalidate: bool = True


@dataclasses.dataclass(frozen=True)
class RemovalOutcome:
    """The result of deleting an installed theme."""

    name: str
    storage_key: Optional[str]
    cache_invalidate: bool = True


# --- Ports (Interfaces) ---

class ArchiveFetcher(ABC):
    """A port for anything that downloads a remote repository archive."""

    @abstractmethod
    async def fetch(self, ref: RemoteRef, destination: Path) -> int:
        """
        Downloads the default-branch archive of ``ref`` to ``destination``.
        Returns the number of bytes written.
        """
        pass


class WorkspaceProvider(ABC):
    """A port for per-request transient directories."""

    @abstractmethod
    def acquire(self, archive_name: str) -> AsyncContextManager[Workspace]:
        """Yields a fresh workspace and removes it on every exit path."""
        pass


class DurableStore(ABC):
    """A port for durable object storage of artifacts."""

    @abstractmethod
    def key_for(self, artifact_class: ArtifactClass, name: str) -> str:
        """Builds the tenant-prefixed storage key for an artifact."""
        pass

    @abstractmethod
    async def put(
        self,
        key: str,
        source: Path,
        artifact_class: ArtifactClass = ArtifactClass.THEME,
    ) -> None:
        """Uploads the file at ``source`` under ``key``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Deletes ``key`` from the backend."""
        pass


class ThemeRegistry(ABC):
    """A port for the set of locally materialized theme packages."""

    @abstractmethod
    async def install(
        self,
        workspace: Workspace,
        canonical_name: str,
        storage_key: str,
        source_kind: SourceKind,
    ) -> RegistrationResult:
        """Validates and materializes the archive held by ``workspace``."""
        pass

    @abstractmethod
    async def get_manifest(self, canonical_name: str) -> ThemeManifest:
        """Returns a theme's manifest. Raises ThemeNotFound."""
        pass

    @abstractmethod
    async def lookup_storage_key(self, canonical_name: str) -> Optional[str]:
        """Returns the durable key recorded at install time, if any."""
        pass

    @abstractmethod
    async def remove(self, canonical_name: str) -> None:
        """Deletes the local copy of a theme. Raises ThemeNotFound."""
        pass

    @abstractmethod
    async def list_all(self) -> List[ThemeManifest]:
        """Returns every valid installed theme."""
        pass

    @abstractmethod
    async def export_archive(self, canonical_name: str, destination: Path) -> Path:
        """Zips an installed theme into ``destination``."""
        pass


class SettingsStore(ABC):
    """A port for the generic key-value settings store."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        pass

    @abstractmethod
    async def edit(self, key: str, value: Any) -> None:
        pass

