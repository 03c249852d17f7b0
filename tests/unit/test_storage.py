"""Unit tests for the SQLite provenance store"""

from pathlib import Path

import pytest

from imgproof.core.errors import DuplicatePublication, RecordNotFound, TxHashAlreadySet
from imgproof.core.models import ProvenanceRecord
from imgproof.storage.provenance_store import SQLiteProvenanceStore


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteProvenanceStore:
    """Create temporary database for testing"""
    db_path = tmp_path / "test_proofs.db"
    store = SQLiteProvenanceStore(db_path)
    await store.connect()
    yield store
    await store.close()


def make_record(metadata_uri: str, original: str = "h0", transformed: str = "h1", **extra) -> ProvenanceRecord:
    return ProvenanceRecord(
        image_name="cat.jpg",
        original_image_hash=original,
        transformed_image_hash=transformed,
        proof="p",
        public_values="pv",
        ipfs_image_uri="ipfs://img",
        ipfs_metadata_uri=metadata_uri,
        **extra,
    )


class TestSQLiteProvenanceStore:
    """Test provenance store operations"""

    @pytest.mark.asyncio
    async def test_connect_creates_schema(self, tmp_path: Path) -> None:
        """Connecting creates the proofs table"""
        store = SQLiteProvenanceStore(tmp_path / "nested" / "proofs.db")
        await store.connect()

        assert store._conn is not None
        cursor = await store._conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = [row[0] for row in await cursor.fetchall()]
        assert "proofs" in tables

        await store.close()

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, store: SQLiteProvenanceStore) -> None:
        """Inserted records come back with their id"""
        stored = await store.create(make_record("ipfs://Qm2"))

        assert stored.id is not None
        retrieved = await store.get_by_id(stored.id)
        assert retrieved == stored
        assert retrieved.tx_hash is None

    @pytest.mark.asyncio
    async def test_duplicate_metadata_uri_rejected(self, store: SQLiteProvenanceStore) -> None:
        """A second insert with the same metadata uri never overwrites"""
        first = await store.create(make_record("ipfs://Qm2", original="a"))

        with pytest.raises(DuplicatePublication) as exc_info:
            await store.create(make_record("ipfs://Qm2", original="b"))

        assert exc_info.value.metadata_uri == "ipfs://Qm2"
        assert await store.count() == 1
        assert (await store.get_by_id(first.id)).original_image_hash == "a"

    @pytest.mark.asyncio
    async def test_update_tx_hash_once(self, store: SQLiteProvenanceStore) -> None:
        """A tx hash is attached once and never replaced"""
        await store.create(make_record("ipfs://Qm2"))

        updated = await store.update_tx_hash("ipfs://Qm2", "0xabc")
        assert updated.tx_hash == "0xabc"

        # Same hash again is a no-op
        again = await store.update_tx_hash("ipfs://Qm2", "0xabc")
        assert again.tx_hash == "0xabc"

        with pytest.raises(TxHashAlreadySet):
            await store.update_tx_hash("ipfs://Qm2", "0xdef")

        stored = await store.get_by_metadata_uri("ipfs://Qm2")
        assert stored.tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_update_unknown_record(self, store: SQLiteProvenanceStore) -> None:
        """Updating an unknown metadata uri fails"""
        with pytest.raises(RecordNotFound):
            await store.update_tx_hash("ipfs://missing", "0xabc")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store: SQLiteProvenanceStore) -> None:
        """Unknown ids and uris return None"""
        assert await store.get_by_id(999) is None
        assert await store.get_by_metadata_uri("ipfs://missing") is None

    @pytest.mark.asyncio
    async def test_get_all_most_recent_first(self, store: SQLiteProvenanceStore) -> None:
        """Listing is newest first"""
        await store.create(make_record("ipfs://old", timestamp="2024-01-01T00:00:00+00:00"))
        await store.create(make_record("ipfs://new", timestamp="2024-06-01T00:00:00+00:00"))
        await store.create(make_record("ipfs://mid", timestamp="2024-03-01T00:00:00+00:00"))

        records = await store.get_all()

        assert [r.ipfs_metadata_uri for r in records] == ["ipfs://new", "ipfs://mid", "ipfs://old"]
        assert len(await store.get_all(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_find_by_hash_matches_either_field(self, store: SQLiteProvenanceStore) -> None:
        """Hash search matches original or transformed hash"""
        await store.create(make_record("ipfs://a", original="h0", transformed="h1"))
        await store.create(make_record("ipfs://b", original="h1", transformed="h2"))
        await store.create(make_record("ipfs://c", original="h5", transformed="h6"))

        matches = await store.find_by_hash("h1")

        assert {r.ipfs_metadata_uri for r in matches} == {"ipfs://a", "ipfs://b"}
        assert await store.find_by_hash("nope") == []

    @pytest.mark.asyncio
    async def test_find_one_by_hash_match_type(self, store: SQLiteProvenanceStore) -> None:
        """The match type restricts which hash field counts"""
        await store.create(make_record("ipfs://a", original="h0", transformed="h1"))
        await store.create(make_record("ipfs://b", original="h1", transformed="h2"))

        produced = await store.find_one_by_hash("h1", match="transformed")
        consumed = await store.find_one_by_hash("h1", match="original")

        assert produced.ipfs_metadata_uri == "ipfs://a"
        assert consumed.ipfs_metadata_uri == "ipfs://b"
        assert await store.find_one_by_hash("h0", match="transformed") is None

        with pytest.raises(ValueError):
            await store.find_one_by_hash("h1", match="sideways")
