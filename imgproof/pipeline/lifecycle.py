"""Proof lifecycle orchestrating generation, publication and anchoring"""

import asyncio
import sqlite3
from typing import Any, Dict, Iterable, Optional, Tuple

from loguru import logger

from imgproof.clients.anchor import ChainAnchor, SignTransaction
from imgproof.clients.ipfs import ArtifactPublisher
from imgproof.clients.prover import ProofClient
from imgproof.core.errors import (
    DuplicatePublication,
    ImgProofError,
    InvalidTransition,
    OperationInProgress,
    ProofRequired,
    PublicationRequired,
    StaleResponse,
)
from imgproof.core.models import (
    Failure,
    LifecycleState,
    ProofArtifact,
    ProvenanceRecord,
    PublishedArtifact,
    SessionSnapshot,
    SignatureData,
)
from imgproof.pipeline.session import ProofSession, SessionStore
from imgproof.storage.provenance_store import ProvenanceStore

State = LifecycleState

GENERATE_FROM = frozenset({State.IDLE, State.GENERATED, State.PUBLISHED, State.VERIFIED})
PUBLISH_FROM = frozenset({State.GENERATED, State.PUBLISHED})
VERIFY_FROM = frozenset({State.PUBLISHED})


class ProofLifecycleController:
    """
    Per-session state machine.

    Idle -> Generating -> Generated -> Publishing -> Published -> Verifying -> Verified

    A failed step records a Failure on the session and hands control back
    to the state the step started from, so the same step can be retried:
    generation falls back to Idle, publication to Generated (or Published
    for a re-publish), anchoring to Published. The same applies to an
    abandoned step. The error is then re-raised to the caller.

    One step runs per session at a time; an overlapping call raises
    OperationInProgress. A response that arrives after its session was
    abandoned, closed or regenerated is discarded with StaleResponse.
    """

    def __init__(
        self,
        sessions: SessionStore,
        prover: ProofClient,
        publisher: ArtifactPublisher,
        anchor: ChainAnchor,
        store: ProvenanceStore,
    ) -> None:
        self.sessions = sessions
        self.prover = prover
        self.publisher = publisher
        self.anchor = anchor
        self.store = store
        self.steps_started = 0
        self.steps_failed = 0
        self.stale_responses = 0
        logger.info("ProofLifecycleController initialized")

    # ========== STEP BOOKKEEPING ==========

    def _begin(
        self,
        session: ProofSession,
        action: str,
        allowed: Iterable[State],
        in_flight: State,
        fallback: Optional[State] = None,
    ) -> Tuple[int, State]:
        """
        Mark a step in flight.

        Returns the step token and the state a failed or abandoned step goes
        back to: `fallback` when given, else the state the step started from.
        """
        if session.busy:
            raise OperationInProgress(
                f"Session {session.session_id} is already {session.state.value}"
            )
        if session.state not in allowed:
            raise InvalidTransition(
                f"Cannot {action} session {session.session_id} from {session.state.value}"
            )

        origin = session.state
        session.step_origin = fallback or origin
        session.busy = True
        session.epoch += 1
        session.state = in_flight
        session.failure = None
        self.steps_started += 1
        logger.debug(
            "Session {session}: {origin} -> {state}",
            session=session.session_id,
            origin=origin.value,
            state=in_flight.value,
        )
        return session.epoch, session.step_origin

    @staticmethod
    def _is_current(session: ProofSession, token: int, artifact: Optional[ProofArtifact] = None) -> bool:
        if session.closed or session.epoch != token:
            return False
        if artifact is not None and session.artifact is not artifact:
            return False
        return True

    def _ensure_current(
        self,
        session: ProofSession,
        token: int,
        action: str,
        artifact: Optional[ProofArtifact] = None,
    ) -> None:
        if not self._is_current(session, token, artifact):
            self.stale_responses += 1
            logger.warning(
                "Discarding late {action} response for session {session}",
                action=action,
                session=session.session_id,
            )
            raise StaleResponse(f"Late {action} response for session {session.session_id} discarded")

    def _finish(self, session: ProofSession, state: State) -> None:
        session.state = state
        session.busy = False
        session.step_origin = None
        logger.debug("Session {session}: now {state}", session=session.session_id, state=state.value)

    def _fail(
        self,
        session: ProofSession,
        token: int,
        in_flight: State,
        returned_to: State,
        error: BaseException,
    ) -> None:
        """Record a failed step, or raise StaleResponse if the session moved on"""
        if not self._is_current(session, token):
            self.stale_responses += 1
            logger.warning(
                "Ignoring {error} from abandoned {state} step of session {session}",
                error=type(error).__name__,
                state=in_flight.value,
                session=session.session_id,
            )
            raise StaleResponse(
                f"Abandoned {in_flight.value} step of session {session.session_id} failed"
            ) from error

        self.steps_failed += 1
        retryable = isinstance(error, ImgProofError) and error.retryable
        session.failure = Failure(
            state=in_flight,
            returned_to=returned_to,
            error_type=type(error).__name__,
            message=str(error),
            retryable=retryable,
        )
        self._finish(session, returned_to)
        logger.error(
            "Session {session}: {state} failed ({error}: {message}), back to {returned}",
            session=session.session_id,
            state=in_flight.value,
            error=type(error).__name__,
            message=str(error),
            returned=returned_to.value,
        )

    def _cancelled(self, session: ProofSession, token: int, returned_to: State) -> None:
        if self._is_current(session, token):
            self._finish(session, returned_to)

    def abandon(self, session_id: str) -> SessionSnapshot:
        """
        Stop waiting for the session's in-flight step.

        The session returns to the state the step started from. The remote
        call may still complete; its response will be discarded.
        """
        session = self.sessions.get(session_id)
        if not session.busy:
            return session.snapshot()

        returned_to = session.step_origin or session.state
        session.epoch += 1
        self._finish(session, returned_to)
        logger.info(
            "Session {session}: abandoned in-flight step, back to {state}",
            session=session_id,
            state=returned_to.value,
        )
        return session.snapshot()

    # ========== GENERATE ==========

    async def generate(self, session_id: str, signature: Optional[SignatureData] = None) -> ProofArtifact:
        """
        Generate a proof for the session's image and transform chain.

        Always allowed outside an in-flight step. Discards the session's
        in-memory artifacts first; records already persisted are untouched.
        """
        session = self.sessions.get(session_id)
        token, origin = self._begin(session, "generate", GENERATE_FROM, State.GENERATING, fallback=State.IDLE)
        session.discard_artifacts()

        try:
            artifact = await self.prover.generate(
                session.image_bytes,
                session.session_id,
                session.chain,
                signature,
            )
        except asyncio.CancelledError:
            self._cancelled(session, token, origin)
            raise
        except Exception as exc:
            self._fail(session, token, State.GENERATING, origin, exc)
            raise

        self._ensure_current(session, token, "generate")
        session.artifact = artifact
        if artifact.degraded:
            session.warnings.append(
                "DegradedMode: proof came from the canned offline response, not the proving service"
            )
        self._finish(session, State.GENERATED)
        return artifact

    # ========== PUBLISH ==========

    async def publish(self, session_id: str, name: Optional[str] = None) -> PublishedArtifact:
        """
        Publish the current artifact and persist its provenance record.

        A record that already exists for the same metadata uri is treated as
        done: the session still reaches Published, with a warning.
        """
        session = self.sessions.get(session_id)
        if session.artifact is None and not session.busy:
            raise ProofRequired(f"Session {session_id} has no proof to publish; generate first")

        token, origin = self._begin(session, "publish", PUBLISH_FROM, State.PUBLISHING)
        artifact = session.artifact
        name = name or session.image_name

        try:
            published = await self.publisher.publish(artifact, name)
            self._ensure_current(session, token, "publish", artifact)
            record = await self._persist(session, artifact, published, name)
        except StaleResponse:
            raise
        except asyncio.CancelledError:
            self._cancelled(session, token, origin)
            raise
        except Exception as exc:
            self._fail(session, token, State.PUBLISHING, origin, exc)
            raise

        self._ensure_current(session, token, "publish", artifact)
        session.image_uri = published.image_uri
        session.metadata_uri = published.metadata_uri
        session.tx_hash = None
        session.record = record
        self._finish(session, State.PUBLISHED)
        return published

    async def _persist(
        self,
        session: ProofSession,
        artifact: ProofArtifact,
        published: PublishedArtifact,
        name: str,
    ) -> Optional[ProvenanceRecord]:
        record = ProvenanceRecord(
            image_name=name,
            original_image_hash=artifact.original_image_hash or None,
            transformed_image_hash=artifact.transformed_image_hash or None,
            proof=artifact.proof,
            public_values=artifact.public_values,
            ipfs_image_uri=published.image_uri,
            ipfs_metadata_uri=published.metadata_uri,
        )
        try:
            return await self.store.create(record)
        except DuplicatePublication as exc:
            logger.warning(
                "Session {session}: {uri} already recorded, treating publication as done",
                session=session.session_id,
                uri=published.metadata_uri,
            )
            session.warnings.append(str(exc))
            return await self.store.get_by_metadata_uri(published.metadata_uri)

    # ========== VERIFY ==========

    async def verify(self, session_id: str, sign_transaction: SignTransaction) -> str:
        """
        Anchor the published proof on-chain.

        Needs a completed publication whatever the signer's state. Once the
        transaction is broadcast the session is Verified; failing to attach
        the hash to the stored record is logged and kept as a warning, and
        can be retried with `retry_anchor_update`.
        """
        session = self.sessions.get(session_id)
        if session.busy:
            raise OperationInProgress(
                f"Session {session.session_id} is already {session.state.value}"
            )
        if not session.metadata_uri or session.artifact is None:
            raise PublicationRequired(f"Session {session_id} must be published before verification")

        token, origin = self._begin(session, "verify", VERIFY_FROM, State.VERIFYING)
        artifact = session.artifact
        metadata_uri = session.metadata_uri

        try:
            tx_hash = await self.anchor.anchor(artifact.public_values, artifact.proof, sign_transaction)
        except asyncio.CancelledError:
            self._cancelled(session, token, origin)
            raise
        except Exception as exc:
            self._fail(session, token, State.VERIFYING, origin, exc)
            raise

        if not self._is_current(session, token, artifact):
            # The transaction exists regardless; keep the durable record in step with the ledger
            await self._attach_tx_hash(None, metadata_uri, tx_hash)
            self._ensure_current(session, token, "verify", artifact)

        session.tx_hash = tx_hash
        session.state = State.VERIFIED
        try:
            await self._attach_tx_hash(session, metadata_uri, tx_hash)
        finally:
            self._finish(session, State.VERIFIED)
        return tx_hash

    async def _attach_tx_hash(
        self,
        session: Optional[ProofSession],
        metadata_uri: str,
        tx_hash: str,
    ) -> Optional[ProvenanceRecord]:
        try:
            record = await self.store.update_tx_hash(metadata_uri, tx_hash)
        except (ImgProofError, sqlite3.Error) as exc:
            logger.error(
                "Transaction {tx} broadcast but record {uri} not updated: {error}",
                tx=tx_hash,
                uri=metadata_uri,
                error=str(exc),
            )
            if session is not None:
                session.warnings.append(f"Record update pending for {tx_hash}: {exc}")
            return None

        if session is not None:
            session.record = record
        return record

    async def retry_anchor_update(self, session_id: str) -> Optional[ProvenanceRecord]:
        """Re-attach a broadcast transaction hash to the stored record"""
        session = self.sessions.get(session_id)
        if session.state != State.VERIFIED or not session.tx_hash or not session.metadata_uri:
            raise InvalidTransition(f"Session {session_id} has no anchored proof to reconcile")
        if session.record is not None and session.record.tx_hash == session.tx_hash:
            return session.record
        return await self._attach_tx_hash(session, session.metadata_uri, session.tx_hash)

    # ========== VIEWS ==========

    def snapshot(self, session_id: str) -> SessionSnapshot:
        return self.sessions.get(session_id).snapshot()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sessions": len(self.sessions),
            "steps_started": self.steps_started,
            "steps_failed": self.steps_failed,
            "stale_responses": self.stale_responses,
            "prover": self.prover.get_stats(),
            "publisher": self.publisher.get_stats(),
        }
