"""Client for the external proving service"""

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from imgproof.core.config import settings
from imgproof.core.errors import InvalidProofResponse, MissingImage, ProvingServiceUnreachable
from imgproof.core.models import ProofArtifact, SignatureData
from imgproof.transforms.chain import TransformChain
from imgproof.transforms.orientation import normalize_chain


class ProofClient:
    """
    Turns an image plus its transform chain into a ProofArtifact.

    The request is a multipart POST to `{base_url}/prove` carrying the raw
    image, the session id, the chain's wire form and an optional signature.

    When the service is unreachable and `allow_mock` is set (offline/dev use
    only), the canned response at `mock_response_path` is returned instead,
    with `degraded=True` on the artifact. Production callers must leave
    `allow_mock` off.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        allow_mock: Optional[bool] = None,
        mock_response_path: Optional[Path] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.PROVER_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROVER_TIMEOUT
        self.allow_mock = settings.ALLOW_MOCK_PROOFS if allow_mock is None else allow_mock
        self.mock_response_path = Path(mock_response_path or settings.MOCK_RESPONSE_PATH)
        self._transport = transport
        self.requests_sent = 0
        self.fallbacks_used = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def generate(
        self,
        image_bytes: bytes,
        session_id: str,
        chain: TransformChain,
        signature: Optional[SignatureData] = None,
    ) -> ProofArtifact:
        """
        Request a proof for `chain` applied to `image_bytes`.

        Args:
            image_bytes: Source image, exactly as loaded into the editor
            session_id: Editing session identifier, forwarded as `id`
            chain: Transformations applied during the session
            signature: Optional signer identity

        Returns:
            Normalized ProofArtifact

        Raises:
            MissingImage: empty image
            ChainMappingError: a record cannot be mapped to its wire form
            ProvingServiceUnreachable: transport failure and no fallback configured
            InvalidProofResponse: service reported failure or sent no proof
        """
        if not image_bytes:
            raise MissingImage("No image data to prove")

        normalized = normalize_chain(image_bytes, chain)
        transformations = normalized.to_backend_form()

        logger.info(
            "Requesting proof for session={session} ({count} transformations)",
            session=session_id,
            count=len(transformations),
        )

        degraded = False
        try:
            data = await self._post_prove(image_bytes, session_id, transformations, signature)
        except ProvingServiceUnreachable as exc:
            if not self.allow_mock:
                raise
            logger.warning(
                "Proving service unreachable ({error}), falling back to canned response",
                error=exc.message,
            )
            data = self._load_mock_response()
            degraded = True
            self.fallbacks_used += 1

        return self._to_artifact(data, degraded=degraded)

    async def _post_prove(
        self,
        image_bytes: bytes,
        session_id: str,
        transformations: List[Dict[str, Any]],
        signature: Optional[SignatureData],
    ) -> Dict[str, Any]:
        form = {"id": session_id, "transformations": json.dumps(transformations)}
        if signature is not None:
            form["signature_data"] = signature.model_dump_json()

        self.requests_sent += 1
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/prove",
                    data=form,
                    files={"image": ("image", image_bytes, "application/octet-stream")},
                )
        except httpx.HTTPError as exc:
            raise ProvingServiceUnreachable(f"Proving service request failed: {exc}") from exc

        if response.status_code >= 500:
            raise ProvingServiceUnreachable(
                f"Proving service returned {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise InvalidProofResponse(
                f"Proving service returned non-JSON body (status {response.status_code})"
            ) from exc

        if not isinstance(data, dict):
            raise InvalidProofResponse("Proving service returned an unexpected payload")
        if response.status_code >= 400 and data.get("success") is not False:
            raise InvalidProofResponse(
                f"Proving service returned {response.status_code}: {data.get('message', '')}"
            )
        return data

    def _load_mock_response(self) -> Dict[str, Any]:
        try:
            return json.loads(self.mock_response_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ProvingServiceUnreachable(f"Failed to load mock response: {exc}") from exc

    @staticmethod
    def _decode_image(raw: Any) -> bytes:
        if not raw:
            return b""
        try:
            if isinstance(raw, str):
                return base64.b64decode(raw, validate=True)
            return bytes(raw)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise InvalidProofResponse(f"Malformed final_image in proof response: {exc}") from exc

    def _to_artifact(self, data: Dict[str, Any], degraded: bool = False) -> ProofArtifact:
        if not data.get("success"):
            raise InvalidProofResponse(data.get("message") or "Failed to generate proof")

        proof_data = data.get("proof_data") or {}
        proof = proof_data.get("proof")
        if not proof:
            raise InvalidProofResponse("No proof received from server")

        artifact = ProofArtifact(
            proof=proof,
            public_values=proof_data.get("public_values") or "",
            verification_key=proof_data.get("verification_key"),
            result_image=self._decode_image(data.get("final_image")),
            original_image_hash=data.get("original_image_hash") or "",
            transformed_image_hash=data.get("transformed_image_hash") or "",
            signer_public_key=data.get("signer_public_key") or None,
            has_signature=bool(data.get("has_signature")),
            message=data.get("message") or "Proof generated successfully",
            degraded=degraded,
        )
        logger.info(
            "Proof generated: {original} -> {transformed}{suffix}",
            original=artifact.original_image_hash,
            transformed=artifact.transformed_image_hash,
            suffix=" (degraded)" if degraded else "",
        )
        return artifact

    async def health(self) -> bool:
        """True when the proving service answers its health check"""
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests_sent": self.requests_sent,
            "fallbacks_used": self.fallbacks_used,
            "allow_mock": self.allow_mock,
        }
