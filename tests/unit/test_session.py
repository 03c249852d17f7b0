"""Unit tests for editing sessions and the session store"""

from io import BytesIO
from typing import Any, List, Tuple

import pytest
from PIL import Image

from imgproof.core.errors import MissingImage, SessionNotFound, UnsupportedTransformType
from imgproof.core.logging import setup_logging
from imgproof.core.models import LifecycleState, TransformType
from imgproof.pipeline.session import ProofSession, SessionStore
from imgproof.transforms.engine import TransformEngine


class RecordingEngine:
    """Transformation engine that remembers what it was asked to do"""

    def __init__(self) -> None:
        self.applied: List[Tuple[int, Any]] = []

    def apply_transform(self, layer_index: int, transform_spec: Any) -> None:
        self.applied.append((layer_index, transform_spec))

    def serialize_layer(self, layer_index: int, fmt: str = "png") -> bytes:
        return f"layer{layer_index}.{fmt}".encode()


def tagged_jpeg(orientation: int) -> bytes:
    """Small JPEG carrying an EXIF orientation tag"""
    exif = Image.Exif()
    exif[0x0112] = orientation
    buffer = BytesIO()
    Image.new("RGB", (4, 2), "blue").save(buffer, format="JPEG", exif=exif.tobytes())
    return buffer.getvalue()


class TestProofSession:
    """Recording edits"""

    def test_new_session_is_idle(self) -> None:
        """A fresh session has no step in flight and no results"""
        session = ProofSession("tab-1", b"IMG0")

        snapshot = session.snapshot()
        assert snapshot.state == LifecycleState.IDLE
        assert snapshot.busy is False
        assert snapshot.transformations == 0
        assert snapshot.proof is None

    def test_requires_image(self) -> None:
        """Sessions cannot start without image bytes"""
        with pytest.raises(MissingImage):
            ProofSession("tab-1", b"")

    def test_apply_without_engine(self) -> None:
        """Without an engine edits are only recorded"""
        session = ProofSession("tab-1", b"IMG0")

        session.apply(TransformType.GRAYSCALE)
        session.apply("Bogus")

        assert [r.type_name for r in session.chain] == ["Grayscale", "Bogus"]
        assert session.render() == b"IMG0"

    def test_apply_forwards_wire_form(self) -> None:
        """The engine receives each edit in its wire form"""
        engine = RecordingEngine()
        assert isinstance(engine, TransformEngine)
        session = ProofSession("tab-1", b"IMG0", engine=engine)

        session.apply("Brighten", {"value": 20})
        session.apply("Rotate180")

        assert engine.applied == [
            (0, {"Brighten": {"value": 20, "region": None}}),
            (0, {"Rotate180": None}),
        ]
        assert len(session.chain) == 2
        assert session.render("jpeg") == b"layer0.jpeg"

    def test_invalid_edit_rejected_before_engine(self) -> None:
        """An unmappable edit reaches neither the engine nor the chain"""
        engine = RecordingEngine()
        session = ProofSession("tab-1", b"IMG0", engine=engine)

        with pytest.raises(UnsupportedTransformType):
            session.apply("Sepia")

        assert engine.applied == []
        assert len(session.chain) == 0


class TestOrientationOnOpen:
    """The engine's layer is turned upright the way the proof request is"""

    def test_rotated_image_corrects_engine(self) -> None:
        """EXIF orientation 6 rotates the layer without touching the audit chain"""
        engine = RecordingEngine()

        session = ProofSession("tab-1", tagged_jpeg(6), engine=engine)

        assert engine.applied == [(0, {"Rotate90": None})]
        assert len(session.chain) == 0

    def test_upright_image_left_alone(self) -> None:
        """Orientations below 5 need no correction"""
        engine = RecordingEngine()

        ProofSession("tab-1", tagged_jpeg(3), engine=engine)

        assert engine.applied == []

    def test_unreadable_image_left_alone(self) -> None:
        """Bytes Pillow cannot identify are treated as upright"""
        engine = RecordingEngine()

        ProofSession("tab-1", b"IMG0", engine=engine)

        assert engine.applied == []

    def test_store_open_with_engine(self) -> None:
        """Sessions opened through the store get the same correction"""
        engine = RecordingEngine()

        session = SessionStore().open("tab-1", tagged_jpeg(8), engine=engine)

        assert engine.applied == [(0, {"Rotate90": None})]
        assert session.chain.has_rotation() is False


class TestSessionStore:
    """Sessions keyed by id"""

    def test_open_get_close(self) -> None:
        """Closing drops the session and marks it closed"""
        sessions = SessionStore()
        session = sessions.open("tab-1", b"IMG0", image_name="cat.jpg")

        assert "tab-1" in sessions
        assert sessions.get("tab-1") is session
        assert session.image_name == "cat.jpg"

        sessions.close("tab-1")

        assert "tab-1" not in sessions
        assert session.closed is True
        with pytest.raises(SessionNotFound):
            sessions.get("tab-1")

    def test_reopen_replaces_session(self) -> None:
        """Reopening an id closes the old session and invalidates its responses"""
        sessions = SessionStore()
        first = sessions.open("tab-1", b"IMG0")
        epoch = first.epoch

        second = sessions.open("tab-1", b"IMG1")

        assert sessions.get("tab-1") is second
        assert first.closed is True
        assert first.epoch == epoch + 1
        assert len(sessions) == 1

    def test_close_unknown_is_noop(self) -> None:
        """Closing an unknown id does nothing"""
        SessionStore().close("missing")


def test_setup_logging_accepts_level() -> None:
    """Explicit and configured levels both install a sink"""
    setup_logging("debug")
    setup_logging()
