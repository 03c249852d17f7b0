"""Transform chain, wire mapping and orientation normalization"""

from imgproof.transforms.chain import TransformChain, TransformVariant, to_variant
from imgproof.transforms.engine import TransformEngine
from imgproof.transforms.orientation import needs_rotation, normalize_chain, read_orientation

__all__ = [
    "TransformChain",
    "TransformVariant",
    "to_variant",
    "TransformEngine",
    "needs_rotation",
    "normalize_chain",
    "read_orientation",
]
