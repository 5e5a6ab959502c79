"""Filesystem implementation of the WorkspaceProvider port."""

import asyncio
import contextlib
import logging
import secrets
import shutil
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Optional

from ..application.domain import Workspace, WorkspaceProvider

_ENTROPY_BYTES = 16


class TemporaryWorkspaceManager(WorkspaceProvider):
    """Allocates unguessable per-request directories and always removes them."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.base_dir = Path(base_dir or tempfile.gettempdir())

    def _create(self, archive_name: str) -> Workspace:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        root_dir = self.base_dir / f"theme-{secrets.token_hex(_ENTROPY_BYTES)}"
        # exist_ok=False: a collision is an error, never a shared directory.
        root_dir.mkdir(mode=0o700)
        file_name = Path(archive_name).name
        if file_name in ("", ".", ".."):
            file_name = "theme.zip"
        return Workspace(root_dir=root_dir, archive_path=root_dir / file_name)

    def release(self, workspace: Workspace):
        """Remove a workspace; never raises, even when it is already gone."""
        try:
            shutil.rmtree(workspace.root_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(
                f"Could not remove workspace {workspace.root_dir}: {e}"
            )

    @contextlib.asynccontextmanager
    async def acquire(self, archive_name: str) -> AsyncGenerator[Workspace, None]:
        """
        Yield a fresh workspace for one installation attempt.

        The directory is removed on every exit path. A failure while
        removing it is logged and never replaces the caller's own error.
        """
        workspace = await asyncio.to_thread(self._create, archive_name)
        self.logger.debug(f"Acquired workspace {workspace.root_dir}")
        try:
            yield workspace
        finally:
            await asyncio.to_thread(self.release, workspace)
            self.logger.debug(f"Released workspace {workspace.root_dir}")
