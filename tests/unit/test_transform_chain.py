"""Unit tests for the transform chain and its wire form"""

import pytest

from imgproof.core.errors import ChainMappingError, MissingRequiredParam, UnsupportedTransformType
from imgproof.core.models import TransformationRecord, TransformType
from imgproof.transforms.chain import TransformChain

REGION = {"x": 10.4, "y": 20.6, "width": 100.2, "height": 50.5}


class TestBackendForm:
    """Mapping session records to the proving service's wire shape"""

    def test_crop_rounds_region(self) -> None:
        """Crop regions are rounded half up to whole pixels"""
        chain = TransformChain()
        chain.add(TransformType.CROP, {"region": REGION})

        assert chain.to_backend_form() == [{"Crop": {"x": 10, "y": 21, "width": 100, "height": 51}}]

    def test_crop_without_region_fails(self) -> None:
        """Crop needs a region"""
        chain = TransformChain()
        chain.add("Crop")

        with pytest.raises(MissingRequiredParam) as exc_info:
            chain.to_backend_form()

        assert exc_info.value.param == "region"
        assert "Crop requires region parameter" in str(exc_info.value)

    def test_rotations_serialize_to_null(self) -> None:
        """Rotations carry no payload"""
        chain = TransformChain()
        for kind in ("Rotate90", "Rotate180", "Rotate270"):
            chain.add(kind, {"region": REGION})  # ignored for rotations

        assert chain.to_backend_form() == [{"Rotate90": None}, {"Rotate180": None}, {"Rotate270": None}]

    def test_region_filters_default_to_whole_image(self) -> None:
        """Region filters without a region apply to the whole image"""
        chain = TransformChain()
        chain.add("Grayscale")
        chain.add("FlipHorizontal", {"region": REGION})
        chain.add("FlipVertical")

        assert chain.to_backend_form() == [
            {"Grayscale": {"region": None}},
            {"FlipHorizontal": {"region": {"x": 10, "y": 21, "width": 100, "height": 51}}},
            {"FlipVertical": {"region": None}},
        ]

    def test_adjustments_use_defaults(self) -> None:
        """Brighten, contrast and blur fall back to neutral values"""
        chain = TransformChain()
        chain.add("Brighten")
        chain.add("Contrast")
        chain.add("Blur", {"sigma": 2.5})

        assert chain.to_backend_form() == [
            {"Brighten": {"value": 0, "region": None}},
            {"Contrast": {"contrast": 1, "region": None}},
            {"Blur": {"sigma": 2.5, "region": None}},
        ]

    def test_text_overlay(self) -> None:
        """Text overlays take position from the region"""
        chain = TransformChain()
        chain.add("TextOverlay", {"text": "hello", "region": REGION, "size": 31.6})

        assert chain.to_backend_form() == [
            {"TextOverlay": {"text": "hello", "x": 10, "y": 21, "size": 32, "color": "#ffffff"}}
        ]

    def test_text_overlay_requires_text(self) -> None:
        """Text overlays need text"""
        chain = TransformChain()
        chain.add("TextOverlay", {"size": 12})

        with pytest.raises(MissingRequiredParam):
            chain.to_backend_form()

    def test_unknown_type_fails(self) -> None:
        """Unknown kinds are rejected when mapping"""
        chain = TransformChain()
        chain.add("Sepia")

        with pytest.raises(UnsupportedTransformType) as exc_info:
            chain.to_backend_form()

        assert isinstance(exc_info.value, ChainMappingError)
        assert exc_info.value.retryable is False


class TestChainOperations:
    """Building chains"""

    def test_append_keeps_order_without_validation(self) -> None:
        """Append records anything in order"""
        chain = TransformChain()
        chain.append(TransformationRecord(type="Sepia"))
        chain.append(TransformationRecord(type="Grayscale"))

        assert [r.type_name for r in chain] == ["Sepia", "Grayscale"]
        assert len(chain) == 2

    def test_prepend_returns_new_chain(self) -> None:
        """Prepend leaves the original chain untouched"""
        chain = TransformChain()
        chain.add("Grayscale")

        normalized = chain.prepend(TransformationRecord(type=TransformType.ROTATE_90))

        assert [r.type_name for r in normalized] == ["Rotate90", "Grayscale"]
        assert [r.type_name for r in chain] == ["Grayscale"]

    def test_has_rotation(self) -> None:
        """Any rotate kind counts as a rotation"""
        chain = TransformChain()
        chain.add("Blur")
        assert chain.has_rotation() is False

        chain.add("Rotate180")
        assert chain.has_rotation() is True
