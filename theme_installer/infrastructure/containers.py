"""
Dependency Injection container for the theme installer.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as services and infrastructure
adapters, based on the application's configuration. The durable store
implementation is selected here, once, instead of at every call site.
"""

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import boto3
import httpx
from dependency_injector import containers, providers

from ..application.domain import *
from ..application.normalizer import PackageNormalizer
from ..application.service import ThemeService
from ..settings import load_settings

from .archive_fetcher import GitHubArchiveFetcher
from .registry import LocalThemeRegistry
from .settings_store import JsonFileSettingsStore
from .storage import S3ObjectStore, UnavailableStore
from .workspace import TemporaryWorkspaceManager

logger = logging.getLogger(__name__)


def build_durable_store(
    bucket: Optional[str],
    tenant_id: Optional[str],
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    client: Any = None,
) -> DurableStore:
    """Choose the durable store for this process."""
    if not bucket or not tenant_id:
        logger.warning(
            "Durable storage is not configured; theme uploads will fail."
        )
        return UnavailableStore(tenant_id)

    if client is None:
        client = boto3.client(
            "s3",
            region_name=region or None,
            endpoint_url=endpoint_url or None,
        )
    return S3ObjectStore(client, bucket=bucket, tenant_id=tenant_id)


def build_plan(limits: Optional[Mapping[str, Any]]) -> PlanConfiguration:
    """Convert the ``limits`` settings section into a plan snapshot."""
    capabilities = {}
    custom_themes = (limits or {}).get("custom_themes") or {}
    if custom_themes:
        allowlist = custom_themes.get("allowlist")
        capabilities[CUSTOM_THEMES] = QuotaState(
            is_limited=bool(custom_themes.get("enabled", False)),
            allowlist=(
                frozenset(name.lower() for name in allowlist)
                if allowlist is not None else None
            ),
            max_allowed=custom_themes.get("max"),
            upgrade_message=(
                custom_themes.get("upgrade_message") or QuotaState.upgrade_message
            ),
        )
    return PlanConfiguration(capabilities=capabilities)


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    config = providers.Singleton(load_settings)

    http_client = providers.Singleton(httpx.AsyncClient)

    fetcher: providers.Factory[ArchiveFetcher] = providers.Factory(
        GitHubArchiveFetcher,
        client=http_client,
        base_url=config.provided.github.base_url,
        timeout=config.provided.github.timeout,
        chunk_size=config.provided.github.chunk_size,
        token=config.provided.github.token,
        show_progress=config.provided.github.show_progress,
    )

    workspaces: providers.Factory[WorkspaceProvider] = providers.Factory(
        TemporaryWorkspaceManager,
        base_dir=config.provided.paths.workspace_dir,
    )

    normalizer = providers.Factory(PackageNormalizer)

    durable_store: providers.Singleton[DurableStore] = providers.Singleton(
        build_durable_store,
        bucket=config.provided.storage.bucket,
        tenant_id=config.provided.storage.tenant_id,
        region=config.provided.storage.region,
        endpoint_url=config.provided.storage.endpoint_url,
    )

    registry: providers.Factory[ThemeRegistry] = providers.Factory(
        LocalThemeRegistry,
        themes_dir=providers.Factory(
            Path, config.provided.paths.content_dir, "themes"
        ),
        required_files=config.provided.themes.required_files,
        recommended_files=config.provided.themes.recommended_files,
    )

    settings_store: providers.Singleton[SettingsStore] = providers.Singleton(
        JsonFileSettingsStore,
        path=config.provided.paths.settings_file,
    )

    plan = providers.Factory(build_plan, limits=config.provided.limits)

    theme_service = providers.Factory(
        ThemeService,
        fetcher=fetcher,
        workspaces=workspaces,
        normalizer=normalizer,
        store=durable_store,
        registry=registry,
        settings=settings_store,
        trusted_organizations=config.provided.themes.trusted_organizations,
    )
