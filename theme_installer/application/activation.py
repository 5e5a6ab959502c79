"""The single place allowed to change which theme is live."""

import logging

from .domain import (
    ACTIVE_THEME_KEY, ActivationOutcome, SettingsStore, ThemeRegistry
)


class ActivationCoordinator:
    """Persists the active theme setting after verifying the package."""

    def __init__(self, registry: ThemeRegistry, settings: SettingsStore):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.registry = registry
        self.settings = settings

    async def active_theme(self):
        return await self.settings.get(ACTIVE_THEME_KEY)

    async def activate(self, canonical_name: str) -> ActivationOutcome:
        """
        Make an installed theme the active one.

        Activation never installs: the registry must already hold a valid
        package. The setting is written only after that check, and a failed
        write fails the whole activation.

        Args:
            canonical_name: The name of an installed theme.

        Returns:
            The theme's manifest and health-check warnings.

        Raises:
            ThemeNotFound: If the theme is not installed.
            PackageInvalid: If the installed package no longer validates.
        """
        manifest = await self.registry.get_manifest(canonical_name)
        previous = await self.active_theme()

        await self.settings.edit(ACTIVE_THEME_KEY, manifest.name)

        self.logger.info(
            f"Activated theme '{manifest.name}' (previously '{previous}')"
        )
        return ActivationOutcome(manifest=manifest, previous_theme=previous)
