"""Interface of the pixel-level transformation engine"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TransformEngine(Protocol):
    """
    Opaque image editor consumed by an editing session.

    `transform_spec` is the wire form of one transformation and is passed
    through unchanged.
    """

    def apply_transform(self, layer_index: int, transform_spec: Any) -> None:
        ...

    def serialize_layer(self, layer_index: int, fmt: str = "png") -> bytes:
        ...
