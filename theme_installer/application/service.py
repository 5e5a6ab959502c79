"""
The core application service and pipeline, containing pure business logic.

This module defines the installation pipeline (ThemeInstallationPipeline)
that carries one request from received bytes to a registered theme, and the
orchestrator (ThemeService) that applies plan limits and exposes every theme
operation to the calling layer.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from .activation import ActivationCoordinator
from .domain import *
from .exceptions import ActivationAfterInstallFailed, ThemeInUse, ThemeNotFound
from .normalizer import PackageNormalizer, sanitize, validate_archive
from .quota import QuotaEvaluator

logger = logging.getLogger(__name__)

THEME_UPLOADED = "theme.uploaded"


class _StateTracker:
    """Logs the state transitions of a single installation run."""

    def __init__(self, label: str):
        self.label = label
        self.state = InstallState.RECEIVED
        logger.info(f"[{label}] {self.state.value}")

    def advance(self, state: InstallState):
        self.state = state
        logger.info(f"[{self.label}] {state.value}")

    def fail(self, error: Exception):
        logger.error(
            f"[{self.label}] failed in state '{self.state.value}': "
            f"{type(error).__name__}: {error}"
        )
        self.state = InstallState.FAILED


class ThemeInstallationPipeline:
    """Encapsulates the full installation pipeline for a single request."""

    def __init__(
        self,
        fetcher: ArchiveFetcher,
        workspaces: WorkspaceProvider,
        normalizer: PackageNormalizer,
        store: DurableStore,
        registry: ThemeRegistry,
    ):
        """Initializes the pipeline with necessary dependencies (ports)."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.fetcher = fetcher
        self.workspaces = workspaces
        self.normalizer = normalizer
        self.store = store
        self.registry = registry

    def _display_name(self, request: InstallationRequest) -> str:
        if request.source_kind is SourceKind.REMOTE_REF:
            return RemoteRef.parse(request.ref).archive_name
        name = request.original_display_name or request.uploaded_bytes_path.name
        if request.source_kind is SourceKind.UPLOAD:
            # Consistent filenames for uploads.
            name = name.lower()
        return name

    async def _materialize_bytes(
        self, request: InstallationRequest, workspace: Workspace
    ) -> int:
        if request.source_kind is SourceKind.REMOTE_REF:
            return await self.fetcher.fetch(
                RemoteRef.parse(request.ref), workspace.archive_path
            )

        await asyncio.to_thread(
            shutil.copyfile, request.uploaded_bytes_path, workspace.archive_path
        )
        return workspace.archive_path.stat().st_size

    async def _discard_durable_copy(self, storage_key: str):
        try:
            await self.store.delete(storage_key)
        except Exception as e:
            self.logger.warning(
                f"Could not remove durable copy {storage_key} of an "
                f"unregistered package: {e}"
            )

    async def run(
        self, request: InstallationRequest, tracker: _StateTracker
    ) -> InstallOutcome:
        """
        Executes the sequential steps for one installation request.

        The workspace is released on every exit path. When registration
        fails after the archive was durably stored, for an invalid package
        or a local disk error alike, the durable copy is removed again.

        Args:
            request: The installation request; quota already checked.
            tracker: The state tracker of this run.
        """
        display_name = self._display_name(request)

        async with self.workspaces.acquire(sanitize(display_name)) as workspace:
            tracker.advance(InstallState.ACQUIRED)

            # Step 1: Bytes (request -> workspace archive)
            size = await self._materialize_bytes(request, workspace)

            # Step 2: Normalize (display name -> canonical + storage names)
            key = self.normalizer.normalize(display_name)
            await asyncio.to_thread(validate_archive, workspace.archive_path)
            tracker.advance(InstallState.NORMALIZED)

            # Step 3: Persist (archive -> durable store)
            storage_key = self.store.key_for(ArtifactClass.THEME, key.storage_name)
            await self.store.put(storage_key, workspace.archive_path)
            tracker.advance(InstallState.DURABLY_STORED)

            # Step 4: Register (archive -> local theme)
            try:
                registration = await self.registry.install(
                    workspace, key.canonical_name, storage_key, request.source_kind
                )
            except Exception:
                await self._discard_durable_copy(storage_key)
                raise
            tracker.advance(InstallState.REGISTERED)

        tracker.advance(InstallState.CLEANED_UP)

        package = ThemePackage(
            canonical_name=registration.manifest.name,
            storage_key=storage_key,
            size_bytes=size,
            source_kind=request.source_kind,
            overridden_existing=registration.overridden_existing,
        )
        return InstallOutcome(
            package=package,
            manifest=registration.manifest,
            cache_invalidate=registration.overridden_existing,
            events=(DomainEvent(THEME_UPLOADED, {"name": package.canonical_name}),),
        )


class ThemeService:
    """Orchestrates theme installation, activation and removal."""

    def __init__(
        self,
        fetcher: ArchiveFetcher,
        workspaces: WorkspaceProvider,
        normalizer: PackageNormalizer,
        store: DurableStore,
        registry: ThemeRegistry,
        settings: SettingsStore,
        trusted_organizations: Iterable[str] = (),
    ):
        """Initializes the service and the reusable installation pipeline."""
        self.store = store
        self.registry = registry
        self.activation = ActivationCoordinator(registry, settings)
        self.trusted_organizations = frozenset(
            org.lower() for org in trusted_organizations
        )
        self.pipeline = ThemeInstallationPipeline(
            fetcher, workspaces, normalizer, store, registry
        )

    # --- Quota gates ---

    async def _installed_count(self, excluding: str) -> int:
        themes = await self.registry.list_all()
        return len([theme for theme in themes if theme.name != excluding])

    async def _check_install_quota(
        self, request: InstallationRequest, quota: QuotaEvaluator
    ):
        if not quota.is_limited(CUSTOM_THEMES):
            return

        if request.source_kind is not SourceKind.REMOTE_REF:
            # The theme name is unknown before extraction, so every upload
            # is refused on a limited plan.
            quota.would_exceed(CUSTOM_THEMES, FORCE_LIMIT_SENTINEL)
            return

        ref = RemoteRef.parse(request.ref)
        if ref.organization in self.trusted_organizations:
            logger.info(f"Skipping limit check for trusted organization {ref}")
            return

        count = None
        if quota.plan.quota_for(CUSTOM_THEMES).max_allowed is not None:
            count = await self._installed_count(excluding=ref.repository_name)
        quota.would_exceed(CUSTOM_THEMES, ref.repository_name, current_count=count)

    # --- Installation ---

    async def install(
        self,
        request: InstallationRequest,
        plan: PlanConfiguration,
        activate: bool = False,
    ) -> InstallOutcome:
        """
        Runs one installation request to completion.

        The quota check always precedes any byte transfer. Remote
        references are parsed before any network call.

        Args:
            request: What to install.
            plan: The plan limits in force for this call.
            activate: Whether to make the theme active once registered.

        Returns:
            The installed package, its manifest, whether downstream caches
            must be invalidated and the events to dispatch.

        Raises:
            InvalidReference, LimitExceeded, RepositoryNotFound,
            StorageUnavailable, PackageInvalid: See the exceptions module.
            ActivationAfterInstallFailed: If ``activate`` failed after the
                theme was installed; carries the install outcome.
        """
        label = request.ref or request.original_display_name
        tracker = _StateTracker(f"{request.source_kind.value}:{label}")
        quota = QuotaEvaluator(plan)
        try:
            if request.source_kind is SourceKind.REMOTE_REF:
                RemoteRef.parse(request.ref)
            await self._check_install_quota(request, quota)
            tracker.advance(InstallState.QUOTA_CHECKED)

            outcome = await self.pipeline.run(request, tracker)

            if activate:
                try:
                    activation = await self._activate(
                        outcome.package.canonical_name, quota
                    )
                except Exception as e:
                    raise ActivationAfterInstallFailed(outcome, e) from e
                tracker.advance(InstallState.ACTIVATED)
                outcome = InstallOutcome(
                    package=outcome.package,
                    manifest=activation.manifest,
                    cache_invalidate=True,
                    events=outcome.events,
                )
        except Exception as e:
            tracker.fail(e)
            raise

        tracker.advance(InstallState.SUCCEEDED)
        return outcome

    async def install_from_remote(
        self, ref: str, plan: PlanConfiguration
    ) -> InstallOutcome:
        return await self.install(InstallationRequest.remote(ref), plan)

    async def upload(
        self,
        path: Path,
        plan: PlanConfiguration,
        original_name: Optional[str] = None,
    ) -> InstallOutcome:
        return await self.install(
            InstallationRequest.upload(path, original_name), plan
        )

    async def install_local_zip(
        self, path: Path, plan: PlanConfiguration
    ) -> InstallOutcome:
        return await self.install(InstallationRequest.local_zip(path), plan)

    # --- Activation ---

    async def _activate(
        self, name: str, quota: QuotaEvaluator
    ) -> ActivationOutcome:
        if quota.is_limited(CUSTOM_THEMES):
            quota.would_exceed(CUSTOM_THEMES, name)
        return await self.activation.activate(name)

    async def activate(
        self, name: str, plan: PlanConfiguration
    ) -> ActivationOutcome:
        """
        Make an installed theme active, subject to the plan's allow-list.

        Raises:
            LimitExceeded: If the plan does not allow this theme.
            ThemeNotFound: If the theme is not installed.
        """
        return await self._activate(name, QuotaEvaluator(plan))

    # --- Removal ---

    async def destroy(
        self, name: str, plan: PlanConfiguration
    ) -> RemovalOutcome:
        """
        Delete a theme from durable storage, then from local disk.

        The local copy is only removed after the durable delete succeeded,
        so a failure never leaves a durable copy without a local reference.

        Raises:
            LimitExceeded: If the plan limits custom themes at all.
            ThemeInUse: If ``name`` is the active theme.
            ThemeNotFound: If the theme is not installed.
            StorageUnavailable: If durable storage is not configured.
        """
        quota = QuotaEvaluator(plan)
        if quota.is_limited(CUSTOM_THEMES):
            quota.would_exceed(CUSTOM_THEMES, FORCE_LIMIT_SENTINEL)

        if name == await self.activation.active_theme():
            raise ThemeInUse(f"Cannot delete the active theme '{name}'")

        storage_key = await self.registry.lookup_storage_key(name)
        if storage_key is None:
            # Themes installed before install records existed.
            storage_key = self.store.key_for(ArtifactClass.THEME, f"{name}.zip")

        await self.store.delete(storage_key)
        await self.registry.remove(name)
        logger.info(f"Destroyed theme '{name}' ({storage_key})")
        return RemovalOutcome(name=name, storage_key=storage_key)

    # --- Reads ---

    async def list_themes(self) -> List[ThemeManifest]:
        return await self.registry.list_all()

    async def active_theme_name(self) -> Optional[str]:
        return await self.activation.active_theme()

    async def read_active(self) -> ThemeManifest:
        name = await self.activation.active_theme()
        if not name:
            raise ThemeNotFound("No theme is active")
        return await self.registry.get_manifest(name)

    async def export_theme(self, name: str, destination: Path) -> Path:
        return await self.registry.export_archive(name, destination)
