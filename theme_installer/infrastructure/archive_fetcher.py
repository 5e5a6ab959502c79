"""HTTP implementation of the ArchiveFetcher port for GitHub repositories."""

import asyncio
import contextlib
from pathlib import Path
from typing import AsyncGenerator, Generator, Optional

import httpx
from tqdm import tqdm

from ..application.domain import ArchiveFetcher, RemoteRef

from .base_client import BaseClient
from .decorators import translate_not_found

_ZIPBALL_ENDPOINT = "/repos/{org}/{repo}/zipball"
_ACCEPT = "application/vnd.github.v3+json"


class GitHubArchiveFetcher(BaseClient, ArchiveFetcher):
    """Downloads the default-branch zipball of a repository atomically."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        timeout: float,
        chunk_size: int = 65536,
        token: Optional[str] = None,
        show_progress: bool = True,
    ):
        """Initializes the fetcher adapter."""
        super().__init__(client, token)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.show_progress = show_progress

    def zipball_url(self, ref: RemoteRef) -> str:
        # No /:ref segment, so the default branch is always fetched.
        return self.base_url + _ZIPBALL_ENDPOINT.format(
            org=ref.organization, repo=ref.repository_name
        )

    @contextlib.contextmanager
    def _atomic_target(self, destination: Path) -> Generator[Path, None, None]:
        """Provides a temporary '.part' path and ensures cleanup."""
        part_path = destination.with_suffix(destination.suffix + ".part")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            yield part_path
        finally:
            part_path.unlink(missing_ok=True)

    async def _stream_chunks(
        self, response: httpx.Response, target_file: Path,
    ) -> AsyncGenerator[int, None]:
        """Produce byte chunks from a response and write them to a file."""
        with open(target_file, "wb") as f:
            async for chunk in response.aiter_bytes(self.chunk_size):
                await asyncio.to_thread(f.write, chunk)
                yield len(chunk)

    async def _consume_stream_with_progress(
        self,
        stream: AsyncGenerator[int, None],
        total_size: Optional[int],
        desc: str,
    ) -> int:
        """Consume the byte stream to update a TQDM progress bar."""
        written = 0
        with tqdm(
            total=total_size,
            unit="B",
            unit_scale=True,
            desc=desc,
            disable=not self.show_progress,
        ) as progress_bar:
            async for progress in stream:
                written += progress
                progress_bar.update(progress)
        return written

    @translate_not_found
    async def _stream_from_network(self, url: str, target_file: Path) -> int:
        """Manage the network request and the streaming process."""
        headers = {"Accept": _ACCEPT, **self._auth_headers()}
        async with self.client.stream(
            "GET",
            url,
            headers=headers,
            timeout=self.timeout,
            follow_redirects=True,
        ) as response:
            response.raise_for_status()
            length = response.headers.get("Content-Length")
            stream = self._stream_chunks(response, target_file)
            return await self._consume_stream_with_progress(
                stream, int(length) if length else None, target_file.name
            )

    async def fetch(self, ref: RemoteRef, destination: Path) -> int:
        """
        Download the repository archive for ``ref`` to ``destination``.

        This is the public method that fulfills the ArchiveFetcher port
        contract. The body is treated as opaque bytes and only moved to
        ``destination`` once the whole payload has arrived.

        Args:
            ref: The parsed repository reference.
            destination: The final path for the archive.

        Returns:
            The number of bytes written.

        Raises:
            RepositoryNotFound: If the endpoint answers 404.
            httpx.HTTPError: For any other transport or status failure.
        """
        url = self.zipball_url(ref)
        self.logger.info(f"Downloading {ref} from {url}...")
        with self._atomic_target(destination) as part_path:
            size = await self._stream_from_network(url, part_path)
            part_path.rename(destination)
        self.logger.info(f"Finished downloading {destination.name} ({size} bytes)")
        return size
