"""
Transform chain and its wire form.

Each transformation kind is its own variant class carrying exactly the
fields the proving service needs. `TransformChain.to_backend_form()` maps the
loosely-typed session records onto those variants, which is where missing or
unknown parameters are rejected.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Type, Union

from imgproof.core.errors import MissingRequiredParam, UnsupportedTransformType
from imgproof.core.models import ROTATIONS, Region, TransformationRecord, TransformType, round_half_up

WireForm = Dict[str, Any]


def _region(params: Dict[str, Any]) -> Optional[Region]:
    raw = params.get("region")
    if raw is None:
        return None
    if isinstance(raw, Region):
        return raw
    return Region(**raw)


def _region_wire(region: Optional[Region]) -> Optional[Dict[str, int]]:
    return region.rounded() if region else None


@dataclass(frozen=True)
class TransformVariant:
    """Base of the transform tagged union"""

    kind: ClassVar[TransformType]

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "TransformVariant":
        raise NotImplementedError

    def payload(self) -> Any:
        raise NotImplementedError

    def to_wire(self) -> WireForm:
        return {self.kind.value: self.payload()}


@dataclass(frozen=True)
class Crop(TransformVariant):
    kind: ClassVar[TransformType] = TransformType.CROP
    region: Region

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Crop":
        region = _region(params)
        if region is None:
            raise MissingRequiredParam(cls.kind.value, "region")
        return cls(region=region)

    def payload(self) -> Dict[str, int]:
        return self.region.rounded()


@dataclass(frozen=True)
class RegionOnly(TransformVariant):
    """Whole-image or regional filter with no other parameters"""

    region: Optional[Region] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "RegionOnly":
        return cls(region=_region(params))

    def payload(self) -> Dict[str, Any]:
        return {"region": _region_wire(self.region)}


@dataclass(frozen=True)
class Grayscale(RegionOnly):
    kind: ClassVar[TransformType] = TransformType.GRAYSCALE


@dataclass(frozen=True)
class FlipHorizontal(RegionOnly):
    kind: ClassVar[TransformType] = TransformType.FLIP_HORIZONTAL


@dataclass(frozen=True)
class FlipVertical(RegionOnly):
    kind: ClassVar[TransformType] = TransformType.FLIP_VERTICAL


@dataclass(frozen=True)
class Brighten(TransformVariant):
    kind: ClassVar[TransformType] = TransformType.BRIGHTEN
    value: float = 0
    region: Optional[Region] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Brighten":
        return cls(value=params.get("value") or 0, region=_region(params))

    def payload(self) -> Dict[str, Any]:
        return {"value": self.value, "region": _region_wire(self.region)}


@dataclass(frozen=True)
class Contrast(TransformVariant):
    kind: ClassVar[TransformType] = TransformType.CONTRAST
    contrast: float = 1
    region: Optional[Region] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Contrast":
        return cls(contrast=params.get("contrast") or 1, region=_region(params))

    def payload(self) -> Dict[str, Any]:
        return {"contrast": self.contrast, "region": _region_wire(self.region)}


@dataclass(frozen=True)
class Blur(TransformVariant):
    kind: ClassVar[TransformType] = TransformType.BLUR
    sigma: float = 0
    region: Optional[Region] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Blur":
        return cls(sigma=params.get("sigma") or 0, region=_region(params))

    def payload(self) -> Dict[str, Any]:
        return {"sigma": self.sigma, "region": _region_wire(self.region)}


@dataclass(frozen=True)
class TextOverlay(TransformVariant):
    kind: ClassVar[TransformType] = TransformType.TEXT_OVERLAY
    text: str
    x: int = 0
    y: int = 0
    size: int = 24
    color: str = "#ffffff"

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "TextOverlay":
        text = params.get("text")
        if not text:
            raise MissingRequiredParam(cls.kind.value, "text")
        region = _region(params)
        return cls(
            text=text,
            x=round_half_up(region.x) if region else 0,
            y=round_half_up(region.y) if region else 0,
            size=round_half_up(params.get("size") or 24),
            color=params.get("color") or "#ffffff",
        )

    def payload(self) -> Dict[str, Any]:
        return {"text": self.text, "x": self.x, "y": self.y, "size": self.size, "color": self.color}


@dataclass(frozen=True)
class Rotation(TransformVariant):
    """Rotations carry no payload on the wire"""

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Rotation":
        return cls()

    def payload(self) -> None:
        return None


@dataclass(frozen=True)
class Rotate90(Rotation):
    kind: ClassVar[TransformType] = TransformType.ROTATE_90


@dataclass(frozen=True)
class Rotate180(Rotation):
    kind: ClassVar[TransformType] = TransformType.ROTATE_180


@dataclass(frozen=True)
class Rotate270(Rotation):
    kind: ClassVar[TransformType] = TransformType.ROTATE_270


VARIANTS: Dict[str, Type[TransformVariant]] = {
    variant.kind.value: variant
    for variant in (
        Crop,
        Grayscale,
        FlipHorizontal,
        FlipVertical,
        Brighten,
        Contrast,
        Blur,
        TextOverlay,
        Rotate90,
        Rotate180,
        Rotate270,
    )
}


def to_variant(record: TransformationRecord) -> TransformVariant:
    """Map one session record onto its typed variant"""
    variant = VARIANTS.get(record.type_name)
    if variant is None:
        raise UnsupportedTransformType(record.type_name)
    return variant.from_params(record.params)


class TransformChain:
    """
    Ordered, append-only list of transformations for one editing session.

    No I/O and no semantic validation on append.
    """

    def __init__(self, records: Optional[List[TransformationRecord]] = None) -> None:
        self._records: List[TransformationRecord] = list(records or [])

    def append(self, record: TransformationRecord) -> None:
        self._records.append(record)

    def add(self, transform_type: Union[TransformType, str], params: Optional[Dict[str, Any]] = None) -> TransformationRecord:
        """Build a record and append it"""
        record = TransformationRecord(type=transform_type, params=params or {})
        self.append(record)
        return record

    def prepend(self, record: TransformationRecord) -> "TransformChain":
        """Return a new chain with `record` first; this chain is left untouched"""
        return TransformChain([record, *self._records])

    def copy(self) -> "TransformChain":
        return TransformChain(self._records)

    def has_rotation(self) -> bool:
        return any(record.type_name in ROTATIONS for record in self._records)

    @property
    def records(self) -> Tuple[TransformationRecord, ...]:
        return tuple(self._records)

    def to_backend_form(self) -> List[WireForm]:
        """
        Map every record to the proving service's wire shape.

        Raises:
            UnsupportedTransformType: record type has no mapping
            MissingRequiredParam: a type-specific required field is absent
        """
        return [to_variant(record).to_wire() for record in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TransformationRecord]:
        return iter(self._records)
