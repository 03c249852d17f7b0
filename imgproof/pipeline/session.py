"""Editing sessions and their lifecycle state"""

from typing import Any, Dict, List, Optional, Union

from loguru import logger

from imgproof.core.errors import MissingImage, SessionNotFound
from imgproof.core.models import (
    Failure,
    LifecycleState,
    ProofArtifact,
    ProvenanceRecord,
    SessionSnapshot,
    TransformationRecord,
    TransformType,
)
from imgproof.transforms.chain import Rotate90, TransformChain, to_variant
from imgproof.transforms.engine import TransformEngine
from imgproof.transforms.orientation import needs_rotation, read_orientation


class ProofSession:
    """
    State of one editing session.

    Holds the source image, the append-only transform chain and whatever the
    lifecycle has produced so far. Only the lifecycle controller changes
    `state`, `busy` and `epoch`.
    """

    def __init__(
        self,
        session_id: str,
        image_bytes: bytes,
        image_name: str = "image",
        engine: Optional[TransformEngine] = None,
        layer_index: int = 0,
    ) -> None:
        if not image_bytes:
            raise MissingImage(f"Session {session_id} has no image")

        self.session_id = session_id
        self.image_bytes = image_bytes
        self.image_name = image_name
        self.engine = engine
        self.layer_index = layer_index
        self.chain = TransformChain()

        self.state = LifecycleState.IDLE
        self.busy = False
        self.closed = False
        # Bumped whenever a step starts or is abandoned; late responses compare against it
        self.epoch = 0
        # Where a failed or abandoned in-flight step returns to
        self.step_origin: Optional[LifecycleState] = None

        self.artifact: Optional[ProofArtifact] = None
        self.image_uri: Optional[str] = None
        self.metadata_uri: Optional[str] = None
        self.tx_hash: Optional[str] = None
        self.record: Optional[ProvenanceRecord] = None
        self.warnings: List[str] = []
        self.failure: Optional[Failure] = None

        if engine is not None:
            self._correct_orientation()

    def _correct_orientation(self) -> None:
        """
        Rotate the engine's layer to match what the proving service sees.

        The rotation is display-only; the audit chain stays as the user built
        it and the proof request injects the same correction on its own.
        """
        orientation = read_orientation(self.image_bytes)
        if not needs_rotation(orientation):
            return
        logger.debug(
            "Session {session}: rotating layer {layer} for EXIF orientation {orientation}",
            session=self.session_id,
            layer=self.layer_index,
            orientation=orientation,
        )
        self.engine.apply_transform(self.layer_index, Rotate90().to_wire())

    def apply(
        self,
        transform_type: Union[TransformType, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> TransformationRecord:
        """
        Record an edit, forwarding it to the transformation engine if one is attached.

        With an engine the record is mapped to its wire form first, so an
        invalid edit is rejected before anything is applied or recorded.
        """
        record = TransformationRecord(type=transform_type, params=params or {})
        if self.engine is not None:
            self.engine.apply_transform(self.layer_index, to_variant(record).to_wire())
        self.chain.append(record)
        return record

    def render(self, fmt: str = "png") -> bytes:
        """Current image from the engine, or the source image without one"""
        if self.engine is None:
            return self.image_bytes
        return self.engine.serialize_layer(self.layer_index, fmt)

    def discard_artifacts(self) -> None:
        """Forget in-memory results; persisted records are untouched"""
        self.artifact = None
        self.image_uri = None
        self.metadata_uri = None
        self.tx_hash = None
        self.record = None
        self.warnings = []

    def snapshot(self) -> SessionSnapshot:
        artifact = self.artifact
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            busy=self.busy,
            transformations=len(self.chain),
            proof=artifact.proof if artifact else None,
            public_values=artifact.public_values if artifact else None,
            original_image_hash=artifact.original_image_hash if artifact else None,
            transformed_image_hash=artifact.transformed_image_hash if artifact else None,
            image_uri=self.image_uri,
            metadata_uri=self.metadata_uri,
            tx_hash=self.tx_hash,
            record_id=self.record.id if self.record else None,
            degraded=artifact.degraded if artifact else False,
            warnings=list(self.warnings),
            failure=self.failure,
        )


class SessionStore:
    """
    Sessions keyed by id, one per editor tab.

    Passed explicitly to whoever needs it; a session lives until `close`.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, ProofSession] = {}

    def open(
        self,
        session_id: str,
        image_bytes: bytes,
        image_name: str = "image",
        engine: Optional[TransformEngine] = None,
    ) -> ProofSession:
        """Start a session, replacing (and closing) any previous one with the same id"""
        if session_id in self._sessions:
            self.close(session_id)
        session = ProofSession(session_id, image_bytes, image_name=image_name, engine=engine)
        self._sessions[session_id] = session
        logger.debug("Opened session {session}", session=session_id)
        return session

    def get(self, session_id: str) -> ProofSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"No session {session_id}")
        return session

    def close(self, session_id: str) -> None:
        """Drop a session; responses still in flight for it become stale"""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.closed = True
        session.epoch += 1
        logger.debug("Closed session {session}", session=session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
