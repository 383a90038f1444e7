"""
Artifact retrieval.

The plugin manager only needs ``fetch(ref) -> bytes``. HttpTransport
resolves each kind of ArtifactRef:

    path   read from the local filesystem
    uri    plain HTTP GET
    image  OCI distribution API: manifest, then the first layer blob

Retries belong to the transport; the manager treats any TransportError as
terminal for that plugin.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

import httpx

from pluginmgr.lib.errors import TransportError
from pluginmgr.lib.image_ref import ImageReference, parse_image_reference
from pluginmgr.models.plugin import ArtifactRef

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPES = ", ".join([
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
])

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


class Transport(Protocol):
    async def fetch(self, ref: ArtifactRef) -> bytes: ...


class HttpTransport:
    """Fetch artifacts from disk, plain URLs, or OCI registries."""

    def __init__(
        self,
        timeout: float = 60.0,
        retries: int = 2,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.retries = retries
        self._http_transport = http_transport

    async def fetch(self, ref: ArtifactRef) -> bytes:
        if ref.path:
            return await self._read_file(Path(ref.path).expanduser())

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._http_transport or httpx.AsyncHTTPTransport(retries=self.retries),
        ) as client:
            try:
                if ref.uri:
                    return await self._get(client, ref.uri)
                return await self._pull_image(client, parse_image_reference(ref.image or ""))
            except httpx.HTTPError as e:
                raise TransportError(f"failed to fetch {ref.location}: {e}") from e
            except ValueError as e:
                raise TransportError(f"failed to fetch {ref.location}: {e}") from e

    async def _read_file(self, path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise TransportError(f"failed to read {path}: {e.strerror or e}") from e

    async def _get(self, client: httpx.AsyncClient, url: str) -> bytes:
        response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def _pull_image(self, client: httpx.AsyncClient, image: ImageReference) -> bytes:
        base = f"https://{image.registry}/v2/{image.repository}"
        headers = {"Accept": MANIFEST_MEDIA_TYPES}

        response = await client.get(f"{base}/manifests/{image.reference}", headers=headers)
        if response.status_code == 401:
            token = await self._anonymous_token(client, response)
            if token:
                headers["Authorization"] = f"Bearer {token}"
                response = await client.get(f"{base}/manifests/{image.reference}", headers=headers)
        response.raise_for_status()

        layers = response.json().get("layers") or []
        if not layers:
            raise TransportError(f"image {image.name}:{image.reference} has no layers")
        digest = layers[0]["digest"]
        logger.debug(f"Pulling layer {digest} from {image.name}")

        blob = await client.get(f"{base}/blobs/{digest}", headers=headers)
        blob.raise_for_status()
        return blob.content

    async def _anonymous_token(self, client: httpx.AsyncClient, challenge: httpx.Response) -> Optional[str]:
        """Answer a Bearer challenge with an anonymous pull token."""
        header = challenge.headers.get("WWW-Authenticate", "")
        if not header.lower().startswith("bearer "):
            return None
        params = dict(_CHALLENGE_PARAM.findall(header))
        realm = params.pop("realm", None)
        if not realm:
            return None
        response = await client.get(realm, params=params)
        response.raise_for_status()
        body = response.json()
        return body.get("token") or body.get("access_token")
