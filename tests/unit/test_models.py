"""Unit tests for core data models"""

import pytest
from pydantic import ValidationError

from imgproof.core.models import (
    LineageNode,
    PlaceholderRecord,
    ProvenanceRecord,
    TransformationRecord,
    TransformType,
)


def make_record(**overrides) -> ProvenanceRecord:
    fields = dict(
        id=1,
        image_name="cat.jpg",
        original_image_hash="h0",
        transformed_image_hash="h1",
        proof="p1",
        public_values="pv1",
        ipfs_image_uri="ipfs://Qm1",
        ipfs_metadata_uri="ipfs://Qm2",
    )
    fields.update(overrides)
    return ProvenanceRecord(**fields)


class TestProvenanceRecord:
    """Test the persisted record model"""

    def test_accepts_camel_case_fields(self) -> None:
        """Records coming from the HTTP API use camelCase names"""
        record = ProvenanceRecord.model_validate(
            {
                "imageName": "cat.jpg",
                "proof": "p",
                "publicValues": "pv",
                "ipfsMetadataUri": "ipfs://Qm2",
            }
        )

        assert record.image_name == "cat.jpg"
        assert record.ipfs_metadata_uri == "ipfs://Qm2"
        assert record.tx_hash is None
        assert record.is_anchored is False
        assert record.timestamp  # assigned on creation

    def test_dumps_camel_case(self) -> None:
        """Serialization by alias uses camelCase keys"""
        dumped = make_record(tx_hash="0xabc").model_dump(by_alias=True)

        assert dumped["ipfsMetadataUri"] == "ipfs://Qm2"
        assert dumped["txHash"] == "0xabc"
        assert dumped["originalImageHash"] == "h0"

    def test_metadata_uri_required(self) -> None:
        """Records cannot exist without a metadata uri"""
        with pytest.raises(ValidationError):
            ProvenanceRecord(image_name="x", proof="p", public_values="pv")


class TestTransformationRecord:
    """Editing steps"""

    def test_records_are_immutable(self) -> None:
        """Transformation records are frozen"""
        record = TransformationRecord(type=TransformType.GRAYSCALE)

        with pytest.raises(ValidationError):
            record.params = {"region": None}

    def test_type_name_for_enum_and_string(self) -> None:
        """type_name works for known and unknown kinds"""
        assert TransformationRecord(type=TransformType.BLUR).type_name == "Blur"
        assert TransformationRecord(type="Sepia").type_name == "Sepia"


class TestLineageNode:
    """Lineage entries and their flags"""

    def test_cycle_flag_needs_real_record(self) -> None:
        """Circular references carry a stored record, missing parents do not"""
        cycle = LineageNode(record=make_record(), level=2, is_orphan=True)
        missing = LineageNode(
            record=PlaceholderRecord(original_image_hash="h9"),
            level=2,
            is_orphan=True,
        )

        assert cycle.is_cycle is True
        assert missing.is_cycle is False
        assert missing.image_hash == "h9"
        assert missing.record.image_name == "Unknown Image"

    def test_plain_ancestor_is_not_cycle(self) -> None:
        """A non-orphan ancestor is never a cycle"""
        node = LineageNode(record=make_record(), level=1)

        assert node.is_orphan is False
        assert node.is_cycle is False
        assert node.image_hash == "h1"
