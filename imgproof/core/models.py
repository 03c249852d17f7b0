"""Core data models for image provenance tracking"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def round_half_up(value: float) -> int:
    """Pixel rounding as the editor does it (0.5 always rounds up)"""
    return math.floor(value + 0.5)


class TransformType(str, Enum):
    """Transformations understood by the proving service"""

    CROP = "Crop"
    GRAYSCALE = "Grayscale"
    ROTATE_90 = "Rotate90"
    ROTATE_180 = "Rotate180"
    ROTATE_270 = "Rotate270"
    FLIP_VERTICAL = "FlipVertical"
    FLIP_HORIZONTAL = "FlipHorizontal"
    BRIGHTEN = "Brighten"
    CONTRAST = "Contrast"
    BLUR = "Blur"
    TEXT_OVERLAY = "TextOverlay"


ROTATIONS = frozenset(
    {TransformType.ROTATE_90.value, TransformType.ROTATE_180.value, TransformType.ROTATE_270.value}
)


class LifecycleState(str, Enum):
    """Proof lifecycle states for one editing session"""

    IDLE = "idle"
    GENERATING = "generating"
    GENERATED = "generated"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    VERIFYING = "verifying"
    VERIFIED = "verified"


class Region(BaseModel):
    """Rectangular area of an image, in pixels"""

    x: float
    y: float
    width: float
    height: float

    def rounded(self) -> dict[str, int]:
        return {
            "x": round_half_up(self.x),
            "y": round_half_up(self.y),
            "width": round_half_up(self.width),
            "height": round_half_up(self.height),
        }


class TransformationRecord(BaseModel):
    """
    One step of an editing session.

    Params are opaque at this layer; they are only checked when the chain is
    mapped to its wire form.
    """

    model_config = ConfigDict(frozen=True)

    type: Union[TransformType, str]
    params: dict[str, Any] = Field(default_factory=dict)
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, TransformType) else str(self.type)


class SignatureData(BaseModel):
    """Optional signer identity forwarded to the proving service (hex strings)"""

    signature: str
    public_key: str


class ProofArtifact(BaseModel):
    """
    Output of one proof generation.

    A regeneration produces a new artifact; an artifact is never mutated.
    `degraded` is set when the artifact came from the canned offline response
    rather than the proving service.
    """

    model_config = ConfigDict(frozen=True)

    artifact_id: UUID = Field(default_factory=uuid4)
    proof: str
    public_values: str
    verification_key: Optional[str] = None
    result_image: bytes = b""
    original_image_hash: str
    transformed_image_hash: str
    signer_public_key: Optional[str] = None
    has_signature: bool = False
    message: str = ""
    degraded: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PublishedArtifact(BaseModel):
    """Content identifiers returned by the two publication phases"""

    image_uri: str
    metadata_uri: str


class ProvenanceRecord(BaseModel):
    """
    Persisted proof record.

    Keyed by `ipfs_metadata_uri`, which is unique across the store. `tx_hash`
    is attached once after anchoring and never cleared.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[int] = None
    image_name: str
    original_image_hash: Optional[str] = None
    transformed_image_hash: Optional[str] = None
    proof: str
    public_values: str
    ipfs_image_uri: Optional[str] = None
    ipfs_metadata_uri: str
    tx_hash: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)

    @property
    def is_anchored(self) -> bool:
        return self.tx_hash is not None


class PlaceholderRecord(BaseModel):
    """Stand-in for an ancestor image that has no record in the store"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    image_name: str = "Unknown Image"
    original_image_hash: str


class LineageNode(BaseModel):
    """One entry of a reconstructed lineage (level 0 is the starting image)"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    record: Union[ProvenanceRecord, PlaceholderRecord]
    level: int
    is_orphan: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_cycle(self) -> bool:
        """Orphan flag raised by a circular reference rather than missing data"""
        return self.is_orphan and isinstance(self.record, ProvenanceRecord) and self.record.id is not None

    @property
    def image_hash(self) -> Optional[str]:
        if isinstance(self.record, PlaceholderRecord):
            return self.record.original_image_hash
        return self.record.transformed_image_hash


class Failure(BaseModel):
    """Last failed lifecycle step of a session"""

    state: LifecycleState
    returned_to: LifecycleState
    error_type: str
    message: str
    retryable: bool = False
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionSnapshot(BaseModel):
    """Caller-facing view of a session's lifecycle"""

    session_id: str
    state: LifecycleState
    busy: bool
    transformations: int
    proof: Optional[str] = None
    public_values: Optional[str] = None
    original_image_hash: Optional[str] = None
    transformed_image_hash: Optional[str] = None
    image_uri: Optional[str] = None
    metadata_uri: Optional[str] = None
    tx_hash: Optional[str] = None
    record_id: Optional[int] = None
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)
    failure: Optional[Failure] = None
