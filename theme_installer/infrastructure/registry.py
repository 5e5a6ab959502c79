"""
Filesystem implementation of the ThemeRegistry port.

Every theme lives in ``<themes_dir>/<canonical name>``. Archives are
extracted and validated inside a hidden staging directory next to the
themes and only then renamed into place, so a reader never observes a
partially extracted package and an invalid upload never replaces a good one.
"""

import asyncio
import logging
import re
import secrets
import shutil
import zipfile
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ..application.domain import (
    RegistrationResult, SourceKind, ThemeManifest, ThemeRegistry, Workspace
)
from ..application.exceptions import PackageInvalid, ThemeNotFound
from ..application.normalizer import check_archive_members

from .manifest_models import InstallRecord, PackageJson

_NAME_PATTERN = re.compile(r"^[\w@][\w@.-]*$")
_PACKAGE_JSON = "package.json"
_INSTALL_RECORD = ".theme-install.json"
_STAGING_PREFIX = ".staging-"
_TRASH_PREFIX = ".trash-"
_IGNORED_TOP_LEVEL = {"__MACOSX"}


def _format_validation_error(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return messages


class LocalThemeRegistry(ThemeRegistry):
    """The authoritative set of themes materialized on local disk."""

    def __init__(
        self,
        themes_dir: Path,
        required_files: Sequence[str] = ("index.hbs", "post.hbs"),
        recommended_files: Sequence[str] = ("default.hbs",),
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.themes_dir = Path(themes_dir)
        self.required_files = tuple(required_files)
        self.recommended_files = tuple(recommended_files)

    # --- Paths ---

    def _is_valid_name(self, name: str) -> bool:
        return bool(name) and bool(_NAME_PATTERN.match(name))

    def _existing_dir(self, name: str) -> Path:
        target = self.themes_dir / name
        if not self._is_valid_name(name) or not target.is_dir():
            raise ThemeNotFound(f"Theme '{name}' does not exist")
        return target

    # --- Archive handling ---

    def _extract(self, archive_path: Path, target: Path):
        try:
            with zipfile.ZipFile(archive_path) as archive:
                members = check_archive_members(archive)
                archive.extractall(target, members)
        except zipfile.BadZipFile as e:
            raise PackageInvalid(
                f"{archive_path.name} is not a valid zip archive", [str(e)]
            ) from e

    def _package_root(self, extracted: Path) -> Path:
        """Locate package.json, unwrapping a single top-level directory."""
        if (extracted / _PACKAGE_JSON).is_file():
            return extracted

        children = [
            child for child in extracted.iterdir()
            if child.name not in _IGNORED_TOP_LEVEL
        ]
        if (
            len(children) == 1
            and children[0].is_dir()
            and (children[0] / _PACKAGE_JSON).is_file()
        ):
            return children[0]

        raise PackageInvalid(
            "Theme is missing package.json", [f"{_PACKAGE_JSON} not found"]
        )

    # --- Validation ---

    def _read_package_json(self, root: Path) -> PackageJson:
        path = root / _PACKAGE_JSON
        if not path.is_file():
            raise PackageInvalid(
                "Theme is missing package.json", [f"{_PACKAGE_JSON} not found"]
            )
        try:
            return PackageJson.model_validate_json(path.read_bytes())
        except ValidationError as e:
            raise PackageInvalid(
                "Theme package.json is invalid", _format_validation_error(e)
            ) from e

    def _read_record(self, root: Path) -> Optional[InstallRecord]:
        path = root / _INSTALL_RECORD
        if not path.is_file():
            return None
        try:
            return InstallRecord.model_validate_json(path.read_bytes())
        except ValidationError as e:
            self.logger.warning(f"Ignoring unreadable install record {path}: {e}")
            return None

    def _validate(self, name: str, root: Path) -> ThemeManifest:
        package = self._read_package_json(root)

        missing = [f for f in self.required_files if not (root / f).is_file()]
        if missing:
            raise PackageInvalid(
                f"Theme '{name}' is missing required templates",
                [f"missing {f}" for f in missing],
            )

        warnings = tuple(
            f"missing recommended template {f}"
            for f in self.recommended_files
            if not (root / f).is_file()
        )
        record = self._read_record(root)
        return ThemeManifest(
            name=name,
            package_name=package.name,
            version=package.version,
            description=package.description,
            path=root,
            storage_key=record.storage_key if record else None,
            source_kind=record.source_kind if record else None,
            size_bytes=record.size_bytes if record else 0,
            warnings=warnings,
        )

    # --- Materialization ---

    def _move_aside(self, target: Path) -> Path:
        trash = self.themes_dir / f"{_TRASH_PREFIX}{secrets.token_hex(8)}"
        target.rename(trash)
        return trash

    def _swap_into_place(self, source: Path, target: Path) -> bool:
        """
        Rename ``source`` to ``target``, replacing any existing theme.

        Two writers of the same name are not serialized: the last rename
        wins. Returns whether an existing theme was replaced.
        """
        replaced = []
        if target.exists():
            replaced.append(self._move_aside(target))
        try:
            source.rename(target)
        except OSError:
            if not target.exists():
                if replaced:
                    replaced[0].rename(target)
                raise
            # Another writer materialized the same name in between.
            replaced.append(self._move_aside(target))
            source.rename(target)

        for trash in replaced:
            shutil.rmtree(trash, ignore_errors=True)
        return bool(replaced)

    def _blocking_install(
        self,
        workspace: Workspace,
        canonical_name: str,
        storage_key: str,
        source_kind: SourceKind,
    ) -> RegistrationResult:
        if not self._is_valid_name(canonical_name):
            raise PackageInvalid(
                f"'{canonical_name}' is not a valid theme name",
                ["invalid name"],
            )

        self.themes_dir.mkdir(parents=True, exist_ok=True)
        staging = self.themes_dir / f"{_STAGING_PREFIX}{secrets.token_hex(8)}"
        target = self.themes_dir / canonical_name
        try:
            self._extract(workspace.archive_path, staging)
            root = self._package_root(staging)
            self._validate(canonical_name, root)

            record = InstallRecord(
                storage_key=storage_key,
                source_kind=source_kind,
                size_bytes=workspace.archive_path.stat().st_size,
            )
            (root / _INSTALL_RECORD).write_text(record.model_dump_json())
            overridden = self._swap_into_place(root, target)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        return RegistrationResult(
            manifest=self._validate(canonical_name, target),
            overridden_existing=overridden,
        )

    def _blocking_list(self) -> List[ThemeManifest]:
        if not self.themes_dir.is_dir():
            return []

        manifests = []
        for path in sorted(self.themes_dir.iterdir()):
            if not path.is_dir() or not self._is_valid_name(path.name):
                continue
            try:
                manifests.append(self._validate(path.name, path))
            except PackageInvalid as e:
                self.logger.warning(f"Skipping invalid theme {path.name}: {e}")
        return manifests

    def _blocking_export(self, canonical_name: str, destination: Path) -> Path:
        root = self._existing_dir(canonical_name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path = destination.with_suffix(destination.suffix + ".part")
        try:
            with zipfile.ZipFile(part_path, "w", zipfile.ZIP_DEFLATED) as archive:
                for path in sorted(root.rglob("*")):
                    if path.is_file() and path.name != _INSTALL_RECORD:
                        archive.write(path, path.relative_to(root).as_posix())
            part_path.rename(destination)
        finally:
            part_path.unlink(missing_ok=True)
        return destination

    # --- Port implementation ---

    async def install(
        self,
        workspace: Workspace,
        canonical_name: str,
        storage_key: str,
        source_kind: SourceKind,
    ) -> RegistrationResult:
        """
        Validate the workspace archive and materialize it as a theme.

        Returns:
            The new manifest and whether a theme of the same name was
            replaced.

        Raises:
            PackageInvalid: For a malformed archive, a missing or invalid
                            package.json, missing templates or unsafe
                            entries. Nothing is replaced in that case.
        """
        result = await asyncio.to_thread(
            self._blocking_install,
            workspace,
            canonical_name,
            storage_key,
            source_kind,
        )
        self.logger.info(
            f"Installed theme '{canonical_name}' "
            f"(overridden={result.overridden_existing})"
        )
        return result

    async def get_manifest(self, canonical_name: str) -> ThemeManifest:
        def _read():
            return self._validate(canonical_name, self._existing_dir(canonical_name))

        return await asyncio.to_thread(_read)

    async def lookup_storage_key(self, canonical_name: str) -> Optional[str]:
        """The durable key recorded at install time, without validating."""

        def _read():
            record = self._read_record(self._existing_dir(canonical_name))
            return record.storage_key if record else None

        return await asyncio.to_thread(_read)

    async def remove(self, canonical_name: str) -> None:
        target = self._existing_dir(canonical_name)
        await asyncio.to_thread(shutil.rmtree, target)
        self.logger.info(f"Removed theme '{canonical_name}'")

    async def list_all(self) -> List[ThemeManifest]:
        return await asyncio.to_thread(self._blocking_list)

    async def export_archive(self, canonical_name: str, destination: Path) -> Path:
        return await asyncio.to_thread(
            self._blocking_export, canonical_name, Path(destination)
        )
