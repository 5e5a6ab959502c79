"""
pytest configuration file

This file contains shared fixtures for all tests: archive builders and
in-memory stand-ins for the collaborators around the theme installer.
"""

import json
import shutil
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from theme_installer.application.domain import (
    ArchiveFetcher, ArtifactClass, DurableStore, PlanConfiguration, QuotaState,
    CUSTOM_THEMES, SettingsStore,
)
from theme_installer.application.normalizer import PackageNormalizer
from theme_installer.application.service import ThemeService
from theme_installer.infrastructure.registry import LocalThemeRegistry
from theme_installer.infrastructure.workspace import TemporaryWorkspaceManager

THEME_FILES = {
    "index.hbs": "{{!< default}}",
    "post.hbs": "{{!< default}}{{title}}",
    "default.hbs": "<html>{{{body}}}</html>",
}


class RecordingStore(DurableStore):
    """Durable store that keeps objects in a dict."""

    def __init__(self, tenant_id: str = "site-1"):
        self.tenant_id = tenant_id
        self.objects: Dict[str, tuple] = {}
        self.deleted: List[str] = []

    def key_for(self, artifact_class: ArtifactClass, name: str) -> str:
        return f"{self.tenant_id}/{artifact_class.segment}/{name}"

    async def put(self, key, source, artifact_class=ArtifactClass.THEME):
        self.objects[key] = (Path(source).read_bytes(), artifact_class.acl)

    async def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)


class StaticFetcher(ArchiveFetcher):
    """Fetcher that copies a prepared archive instead of downloading."""

    def __init__(self, archive: Optional[Path] = None, error: Exception = None):
        self.archive = archive
        self.error = error
        self.calls = []

    async def fetch(self, ref, destination):
        self.calls.append(ref)
        if self.error is not None:
            raise self.error
        shutil.copyfile(self.archive, destination)
        return destination.stat().st_size


class InMemorySettingsStore(SettingsStore):
    """Settings store backed by a dict, optionally failing on writes."""

    def __init__(self, values: Optional[dict] = None, fail_on_edit: bool = False):
        self.values = dict(values or {})
        self.fail_on_edit = fail_on_edit

    async def get(self, key):
        return self.values.get(key)

    async def edit(self, key, value):
        if self.fail_on_edit:
            raise OSError("settings database is read-only")
        self.values[key] = value


@pytest.fixture
def make_theme_zip(tmp_path):
    """Factory building theme archives in a temporary directory."""

    def _make(
        file_name: str = "casper.zip",
        package: Optional[dict] = None,
        files: Optional[Dict[str, str]] = None,
        wrap_dir: Optional[str] = None,
        extra_entries: Optional[Dict[str, str]] = None,
    ) -> Path:
        archives = tmp_path / "archives"
        archives.mkdir(exist_ok=True)
        path = archives / file_name

        if package is None:
            package = {"name": "casper", "version": "5.0.0"}
        contents = dict(THEME_FILES if files is None else files)
        if package is not False:
            contents["package.json"] = json.dumps(package)

        prefix = f"{wrap_dir}/" if wrap_dir else ""
        with zipfile.ZipFile(path, "w") as archive:
            for name, text in contents.items():
                archive.writestr(prefix + name, text)
            for name, text in (extra_entries or {}).items():
                archive.writestr(name, text)
        return path

    return _make


@pytest.fixture
def workspace_dir(tmp_path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def themes_dir(tmp_path) -> Path:
    return tmp_path / "content" / "themes"


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def make_fetcher():
    """Factory for fetchers serving a prepared archive or an error."""
    return StaticFetcher


@pytest.fixture
def make_settings():
    """Factory for in-memory settings stores."""
    return InMemorySettingsStore


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def registry(themes_dir) -> LocalThemeRegistry:
    return LocalThemeRegistry(themes_dir)


@pytest.fixture
def make_service(workspace_dir, registry, store, settings_store):
    """Factory for a ThemeService with swappable collaborators."""

    def _make(fetcher=None, durable_store=None, settings=None) -> ThemeService:
        return ThemeService(
            fetcher=fetcher or StaticFetcher(),
            workspaces=TemporaryWorkspaceManager(workspace_dir),
            normalizer=PackageNormalizer(),
            store=durable_store or store,
            registry=registry,
            settings=settings or settings_store,
            trusted_organizations=("tryghost",),
        )

    return _make


@pytest.fixture
def service(make_service) -> ThemeService:
    return make_service()


@pytest.fixture
def unlimited_plan() -> PlanConfiguration:
    return PlanConfiguration.unlimited()


@pytest.fixture
def make_plan():
    """Factory for a plan limiting custom themes."""

    def _make(allowlist=None, max_allowed=None) -> PlanConfiguration:
        return PlanConfiguration(
            capabilities={
                CUSTOM_THEMES: QuotaState(
                    is_limited=True,
                    allowlist=frozenset(allowlist) if allowlist is not None else None,
                    max_allowed=max_allowed,
                )
            }
        )

    return _make
