"""
Asset fetching for composer module.

Resolves audio and image references (data URLs or remote URLs) into files
inside the render session. Images are fetched in parallel; a failed image is
dropped, a failed audio fetch fails the job.
"""
import asyncio
import base64
import binascii
import mimetypes
import re
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from shared.errors import DecodeError, InsufficientAssetsError, NetworkError, PipelineError
from shared.logging import get_logger
from shared.models import Asset
from shared.retry import retry_with_backoff

from .config import ComposerConfig
from .session import RenderSession

logger = get_logger("composer.downloader")

DATA_URL_PATTERN = re.compile(r"^data:([^;,]+)(?:;[^,]*)?;base64,(.+)$", re.DOTALL)

DEFAULT_EXTENSIONS = {"audio": ".mp3", "image": ".png"}
# mimetypes gives odd answers for a few common types
PREFERRED_EXTENSIONS = {"audio/mpeg": ".mp3", "image/jpeg": ".jpg", "audio/wav": ".wav", "audio/x-wav": ".wav"}


def is_data_url(reference: str) -> bool:
    """Check whether reference is an inline data URL."""
    return reference.startswith("data:")


def decode_data_url(reference: str) -> Tuple[str, bytes]:
    """
    Decode a base64 data URL.

    Args:
        reference: String of the form data:<media-type>;base64,<body>

    Returns:
        Tuple of (media type, decoded bytes)

    Raises:
        DecodeError: If the format or the base64 body is invalid
    """
    match = DATA_URL_PATTERN.match(reference.strip())
    if not match:
        raise DecodeError("Invalid data URL format")
    media_type, body = match.group(1), match.group(2)
    try:
        payload = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 payload in data URL: {e}") from e
    if not payload:
        raise DecodeError("Data URL carries an empty payload")
    return media_type, payload


def guess_extension(reference: str, kind: str) -> str:
    """Pick a file extension from the data URL media type or the URL path."""
    if is_data_url(reference):
        match = DATA_URL_PATTERN.match(reference.strip())
        if match:
            media_type = match.group(1).lower()
            return PREFERRED_EXTENSIONS.get(media_type) or mimetypes.guess_extension(media_type) or DEFAULT_EXTENSIONS[kind]
        return DEFAULT_EXTENSIONS[kind]
    suffix = Path(urlsplit(reference).path).suffix.lower()
    if suffix and len(suffix) <= 5:
        return suffix
    return DEFAULT_EXTENSIONS[kind]


class AssetFetcher:
    """Fetches references into local files."""

    def __init__(self, config: ComposerConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            config: Composer configuration (timeouts, retry, concurrency)
            client: Optional shared HTTP client; one is created per fetch batch otherwise
        """
        self.config = config
        self._client = client

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.fetch_timeout, connect=self.config.connect_timeout)

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        """Single HTTP GET; maps failures to NetworkError."""
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"HTTP {e.response.status_code} fetching {url}",
                status_code=e.response.status_code
            ) from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timeout fetching {url}: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Transport error fetching {url}: {e}") from e

    async def _fetch_with(self, client: httpx.AsyncClient, reference: str, destination: Path) -> bytes:
        if not reference or not reference.strip():
            raise DecodeError("Empty asset reference")
        if is_data_url(reference):
            _, payload = decode_data_url(reference)
        else:
            download = retry_with_backoff(
                max_attempts=self.config.fetch_attempts,
                base_delay=self.config.fetch_retry_delay,
                retryable_exceptions=(NetworkError,)
            )(self._download)
            payload = await download(client, reference)
            if not payload:
                raise NetworkError(f"Empty response body fetching {reference}")
        destination.write_bytes(payload)
        return payload

    async def fetch(self, reference: str, destination: Path) -> bytes:
        """
        Resolve reference into bytes and write them to destination.

        Args:
            reference: Data URL or remote URL
            destination: File to write

        Returns:
            Fetched bytes

        Raises:
            DecodeError: Malformed data URL
            NetworkError: Non-success status or transport failure
        """
        if self._client is not None:
            return await self._fetch_with(self._client, reference, destination)
        async with httpx.AsyncClient(timeout=self._timeout(), follow_redirects=True) as client:
            return await self._fetch_with(client, reference, destination)

    async def fetch_audio(self, reference: str, session: RenderSession) -> Asset:
        """
        Fetch the narration track. Any failure is fatal and propagates.

        Returns:
            Fetched audio Asset
        """
        destination = session.path(f"audio{guess_extension(reference, 'audio')}")
        logger.info(
            "Fetching audio",
            extra={"session_id": session.id, "inline": is_data_url(reference)}
        )
        payload = await self.fetch(reference, destination)
        logger.info(
            f"Fetched audio ({len(payload)} bytes)",
            extra={"session_id": session.id, "size": len(payload)}
        )
        return Asset(reference=reference, kind="audio", path=destination, size=len(payload))

    async def fetch_images(self, references: List[str], session: RenderSession) -> List[Asset]:
        """
        Fetch all images in parallel (bounded), dropping failures.

        Args:
            references: Ordered image references
            session: Render session that owns the files

        Returns:
            Image assets in input order; failed ones have no path

        Raises:
            InsufficientAssetsError: If every image failed
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrent_fetches)

        async def fetch_image(index: int, reference: str, client: httpx.AsyncClient) -> Asset:
            asset = Asset(reference=reference, kind="image", index=index)
            destination = session.path(f"image_{index:03d}{guess_extension(reference, 'image')}")
            async with semaphore:
                try:
                    payload = await self._fetch_with(client, reference, destination)
                except PipelineError as e:
                    logger.error(
                        f"Failed to fetch image {index}: {e}",
                        extra={"session_id": session.id, "image_index": index, "error": str(e)}
                    )
                    return asset
            return asset.model_copy(update={"path": destination, "size": len(payload)})

        async def fetch_all(client: httpx.AsyncClient) -> List[Asset]:
            tasks = [fetch_image(i, ref, client) for i, ref in enumerate(references)]
            return list(await asyncio.gather(*tasks))

        if self._client is not None:
            assets = await fetch_all(self._client)
        else:
            async with httpx.AsyncClient(timeout=self._timeout(), follow_redirects=True) as client:
                assets = await fetch_all(client)

        fetched = [asset for asset in assets if asset.fetched]
        logger.info(
            f"Fetched {len(fetched)}/{len(references)} images",
            extra={"session_id": session.id, "fetched": len(fetched), "requested": len(references)}
        )
        if not fetched:
            raise InsufficientAssetsError(
                f"No images were fetched successfully ({len(references)} attempted)"
            )
        return assets
