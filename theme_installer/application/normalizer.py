"""
Turns user supplied archive names into storage-safe identifiers and checks
that an archive is structurally safe to extract.
"""

import re
import secrets
import stat
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, List

from .domain import CanonicalKey
from .exceptions import PackageInvalid

_UNSAFE_CHARACTERS = re.compile(r"[^\w@.]")
_ARCHIVE_SUFFIX = re.compile(r"\.zip$", re.IGNORECASE)
_HAS_WORD_CHARACTER = re.compile(r"\w")


def sanitize(raw_name: str) -> str:
    """Replace every character that is not a word character, '@' or '.'."""
    return _UNSAFE_CHARACTERS.sub("-", raw_name or "")


def _random_disambiguator() -> str:
    return secrets.token_hex(6)


class PackageNormalizer:
    """
    Derives the canonical theme name and a unique storage name.

    The canonical name comes from the display name alone, so an installed
    package can be found again after a restart. The storage name prefixes
    the sanitized file name with a short random token so that repeated
    installs of the same source never share a durable key.
    """

    def __init__(self, disambiguator: Callable[[], str] = _random_disambiguator):
        self.disambiguator = disambiguator

    def canonical_name(self, raw_name: str) -> str:
        stem = _ARCHIVE_SUFFIX.sub("", sanitize(raw_name.strip()))
        name = stem.strip(".-").lower()
        if not name or not _HAS_WORD_CHARACTER.search(name):
            raise PackageInvalid(
                f"'{raw_name}' does not produce a usable theme name",
                errors=["empty name after sanitization"],
            )
        return name

    def normalize(self, raw_name: str) -> CanonicalKey:
        """
        Raises:
            PackageInvalid: If nothing usable is left after sanitizing.
        """
        canonical = self.canonical_name(raw_name)
        file_name = sanitize(raw_name.strip())
        if not _ARCHIVE_SUFFIX.search(file_name):
            file_name = f"{file_name}.zip"
        return CanonicalKey(
            canonical_name=canonical,
            storage_name=f"{self.disambiguator()}_{file_name}",
        )


def check_archive_members(archive: zipfile.ZipFile) -> List[zipfile.ZipInfo]:
    """
    Reject absolute paths, parent references and symbolic links.

    Raises:
        PackageInvalid: Listing every offending entry.
    """
    members = archive.infolist()
    errors = []
    for info in members:
        raw = info.filename.replace("\\", "/")
        parts = PurePosixPath(raw).parts
        if raw.startswith("/") or ".." in parts or (parts and ":" in parts[0]):
            errors.append(f"unsafe path '{info.filename}'")
        elif stat.S_ISLNK(info.external_attr >> 16):
            errors.append(f"symbolic link '{info.filename}'")

    if errors:
        raise PackageInvalid("Archive contains unsafe entries", errors)
    if not members:
        raise PackageInvalid("Archive is empty", ["no entries"])
    return members


def validate_archive(archive_path: Path):
    """Check that ``archive_path`` is a readable zip with only safe entries."""
    try:
        with zipfile.ZipFile(archive_path) as archive:
            check_archive_members(archive)
            corrupt = archive.testzip()
    except zipfile.BadZipFile as e:
        raise PackageInvalid(
            f"{archive_path.name} is not a valid zip archive", [str(e)]
        ) from e
    if corrupt is not None:
        raise PackageInvalid(
            f"{archive_path.name} is corrupt", [f"bad CRC for '{corrupt}'"]
        )
