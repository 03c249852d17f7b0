"""Publication of proof artifacts to IPFS through the Pinata pinning API"""

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from imgproof.core.config import settings
from imgproof.core.errors import InvalidStorageResponse, StorageUnavailable
from imgproof.core.models import ProofArtifact, PublishedArtifact

IPFS_SCHEME = "ipfs://"
DEFAULT_METADATA_NAME = "Transformed Image with ZK Proof"


def cid_from_uri(uri: str) -> str:
    return uri[len(IPFS_SCHEME):] if uri.startswith(IPFS_SCHEME) else uri


class ArtifactPublisher:
    """
    Two-phase publisher: the image first, then a metadata document that
    references it by content identifier.

    Each phase can be retried on its own. Nothing is rolled back: an image
    pinned before a failed metadata upload is left in storage. Callers persist
    a ProvenanceRecord only after both phases succeed, keyed by the metadata
    uri.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        jwt: Optional[str] = None,
        gateway_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = (api_url or settings.PINATA_API_URL).rstrip("/")
        self.jwt = settings.PINATA_JWT if jwt is None else jwt
        self.gateway = (gateway_url or settings.IPFS_GATEWAY_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT
        self._transport = transport
        self.images_published = 0
        self.metadata_published = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.jwt}"},
        )

    async def _pin(self, endpoint: str, **request: Any) -> str:
        url = f"{self.api_url}/pinning/{endpoint}"
        try:
            async with self._client() as client:
                response = await client.post(url, **request)
        except httpx.HTTPError as exc:
            raise StorageUnavailable(f"{endpoint} request failed: {exc}") from exc

        if response.status_code >= 400:
            raise StorageUnavailable(
                f"{endpoint} failed: {response.text}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise InvalidStorageResponse(f"{endpoint} returned non-JSON body") from exc

        cid = data.get("IpfsHash") if isinstance(data, dict) else None
        if not cid:
            raise InvalidStorageResponse(f"{endpoint} response has no IpfsHash")

        if data.get("isDuplicate"):
            logger.debug("Content {cid} was already pinned", cid=cid)
        return f"{IPFS_SCHEME}{cid}"

    async def publish_image(self, data: bytes, name: str) -> str:
        """
        Pin raw image bytes.

        Returns:
            `ipfs://<cid>` for the image
        """
        request: Dict[str, Any] = {"files": {"file": (name, data, "application/octet-stream")}}
        if name:
            request["data"] = {"pinataMetadata": json.dumps({"name": name})}

        uri = await self._pin("pinFileToIPFS", **request)
        self.images_published += 1
        logger.info("Published image {name} as {uri}", name=name, uri=uri)
        return uri

    async def publish_metadata(
        self,
        image_uri: str,
        proof: str,
        public_values: str,
        name: Optional[str] = None,
    ) -> str:
        """
        Pin the JSON metadata document that links an image to its proof.

        Returns:
            `ipfs://<cid>` for the metadata, distinct from the image uri
        """
        content = {
            "name": name or DEFAULT_METADATA_NAME,
            "image": image_uri,
            "proof": proof,
            "publicValues": public_values,
        }
        uri = await self._pin(
            "pinJSONToIPFS",
            json={
                "pinataContent": content,
                "pinataMetadata": {"name": f"{name or 'proof-metadata'}.json"},
            },
        )
        self.metadata_published += 1
        logger.info("Published metadata for {image} as {uri}", image=image_uri, uri=uri)
        return uri

    async def publish(self, artifact: ProofArtifact, name: str) -> PublishedArtifact:
        """Run both phases in order for one artifact"""
        image_uri = await self.publish_image(artifact.result_image, name)
        metadata_uri = await self.publish_metadata(
            image_uri=image_uri,
            proof=artifact.proof,
            public_values=artifact.public_values,
            name=name,
        )
        return PublishedArtifact(image_uri=image_uri, metadata_uri=metadata_uri)

    def gateway_url(self, uri: Optional[str]) -> Optional[str]:
        """HTTP gateway address for an `ipfs://` uri"""
        if not uri:
            return None
        return f"{self.gateway}/{cid_from_uri(uri)}"

    def get_stats(self) -> Dict[str, int]:
        return {
            "images_published": self.images_published,
            "metadata_published": self.metadata_published,
        }
