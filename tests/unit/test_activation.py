"""Tests for ActivationCoordinator and JsonFileSettingsStore."""

import shutil

import pytest

from theme_installer.application.activation import ActivationCoordinator
from theme_installer.application.domain import (
    ACTIVE_THEME_KEY, SourceKind, Workspace,
)
from theme_installer.application.exceptions import ThemeNotFound
from theme_installer.infrastructure.settings_store import JsonFileSettingsStore


@pytest.fixture
def installed_registry(registry, tmp_path, make_theme_zip):
    """A registry with 'casper' installed."""

    async def _install():
        root = tmp_path / "ws"
        root.mkdir()
        archive = root / "casper.zip"
        shutil.copyfile(make_theme_zip(), archive)
        await registry.install(
            Workspace(root, archive), "casper", "site-1/themes/x.zip", SourceKind.UPLOAD
        )
        return registry

    return _install


class TestActivate:
    """Activation writes the setting only for valid, installed themes."""

    @pytest.mark.asyncio
    async def test_activates_installed_theme(self, installed_registry, make_settings):
        settings = make_settings({ACTIVE_THEME_KEY: "source"})
        coordinator = ActivationCoordinator(await installed_registry(), settings)

        outcome = await coordinator.activate("casper")

        assert settings.values[ACTIVE_THEME_KEY] == "casper"
        assert outcome.manifest.name == "casper"
        assert outcome.previous_theme == "source"
        assert outcome.cache_invalidate

    @pytest.mark.asyncio
    async def test_never_installs(self, registry, make_settings):
        settings = make_settings({ACTIVE_THEME_KEY: "source"})
        coordinator = ActivationCoordinator(registry, settings)

        with pytest.raises(ThemeNotFound):
            await coordinator.activate("journal")

        assert settings.values[ACTIVE_THEME_KEY] == "source"

    @pytest.mark.asyncio
    async def test_failed_write_fails_activation(self, installed_registry, make_settings):
        settings = make_settings(
            {ACTIVE_THEME_KEY: "source"}, fail_on_edit=True
        )
        coordinator = ActivationCoordinator(await installed_registry(), settings)

        with pytest.raises(OSError):
            await coordinator.activate("casper")

        assert await coordinator.active_theme() == "source"


class TestJsonFileSettingsStore:
    """Settings survive a new store instance and are written atomically."""

    @pytest.mark.asyncio
    async def test_missing_file_reads_as_empty(self, tmp_path):
        store = JsonFileSettingsStore(tmp_path / "settings.json")
        assert await store.get(ACTIVE_THEME_KEY) is None

    @pytest.mark.asyncio
    async def test_edit_persists(self, tmp_path):
        path = tmp_path / "content" / "settings.json"
        await JsonFileSettingsStore(path).edit(ACTIVE_THEME_KEY, "casper")

        assert await JsonFileSettingsStore(path).get(ACTIVE_THEME_KEY) == "casper"
        assert not path.with_suffix(".json.part").exists()

    @pytest.mark.asyncio
    async def test_edit_keeps_other_keys(self, tmp_path):
        store = JsonFileSettingsStore(tmp_path / "settings.json")
        await store.edit("title", "My Site")
        await store.edit(ACTIVE_THEME_KEY, "casper")

        assert await store.get("title") == "My Site"
