"""Core data models and configuration"""

from imgproof.core.models import (
    TransformType,
    LifecycleState,
    Region,
    TransformationRecord,
    SignatureData,
    ProofArtifact,
    PublishedArtifact,
    ProvenanceRecord,
    PlaceholderRecord,
    LineageNode,
    Failure,
    SessionSnapshot,
)
from imgproof.core.config import settings

__all__ = [
    "TransformType",
    "LifecycleState",
    "Region",
    "TransformationRecord",
    "SignatureData",
    "ProofArtifact",
    "PublishedArtifact",
    "ProvenanceRecord",
    "PlaceholderRecord",
    "LineageNode",
    "Failure",
    "SessionSnapshot",
    "settings",
]
