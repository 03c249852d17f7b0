"""SQLite-backed store of proof records"""

import sqlite3
from pathlib import Path
from typing import List, Optional, Protocol, Union

import aiosqlite
from loguru import logger

from imgproof.core.errors import (
    DuplicatePublication,
    RecordNotFound,
    StoreUnavailable,
    TxHashAlreadySet,
)
from imgproof.core.models import ProvenanceRecord

COLUMNS = (
    "image_name",
    "original_image_hash",
    "transformed_image_hash",
    "proof",
    "public_values",
    "ipfs_image_uri",
    "ipfs_metadata_uri",
    "tx_hash",
    "timestamp",
)


class ProvenanceStore(Protocol):
    """Operations the lifecycle and the lineage resolver rely on"""

    async def create(self, record: ProvenanceRecord) -> ProvenanceRecord:
        ...

    async def update_tx_hash(self, metadata_uri: str, tx_hash: str) -> ProvenanceRecord:
        ...

    async def get_by_id(self, record_id: int) -> Optional[ProvenanceRecord]:
        ...

    async def get_by_metadata_uri(self, metadata_uri: str) -> Optional[ProvenanceRecord]:
        ...

    async def get_all(self) -> List[ProvenanceRecord]:
        ...

    async def find_by_hash(self, image_hash: str) -> List[ProvenanceRecord]:
        ...


class SQLiteProvenanceStore:
    """
    Proof records in a single `proofs` table.

    Records are created at publication, updated once to attach a transaction
    hash, and never deleted. `ipfs_metadata_uri` is unique; a duplicate insert
    raises DuplicatePublication instead of overwriting.

    Listing queries return newest first (timestamp, then id), which is also
    the order the lineage resolver uses to break ties between candidates.
    """

    def __init__(self, db_path: Union[Path, str]) -> None:
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Establish database connection"""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row

        await self._setup_schema()
        logger.info(f"Connected to provenance database: {self.db_path}")

    async def close(self) -> None:
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Provenance database connection closed")

    async def __aenter__(self) -> "SQLiteProvenanceStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StoreUnavailable("Database not connected")
        return self._conn

    async def _setup_schema(self) -> None:
        conn = self._require_conn()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS proofs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                image_name TEXT NOT NULL,
                original_image_hash TEXT,
                transformed_image_hash TEXT,
                proof TEXT NOT NULL,
                public_values TEXT NOT NULL,
                ipfs_image_uri TEXT,
                ipfs_metadata_uri TEXT NOT NULL UNIQUE,
                tx_hash TEXT,
                timestamp TEXT NOT NULL
            )
        """)

        # Lineage walks query by either hash
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_proofs_original_hash
            ON proofs(original_image_hash)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_proofs_transformed_hash
            ON proofs(transformed_image_hash)
        """)

        await conn.commit()
        logger.debug("Provenance schema initialized")

    async def create(self, record: ProvenanceRecord) -> ProvenanceRecord:
        """
        Insert a freshly published record.

        Returns:
            The stored record with its assigned id

        Raises:
            DuplicatePublication: a record with this metadata uri already exists
        """
        conn = self._require_conn()
        values = tuple(getattr(record, column) for column in COLUMNS)

        try:
            cursor = await conn.execute(
                f"INSERT INTO proofs ({', '.join(COLUMNS)}) VALUES ({', '.join('?' * len(COLUMNS))})",
                values,
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE constraint failed" in str(exc):
                raise DuplicatePublication(record.ipfs_metadata_uri) from exc
            raise

        await conn.commit()
        stored = record.model_copy(update={"id": cursor.lastrowid})
        logger.debug(
            "Stored proof record {id} for {uri}",
            id=stored.id,
            uri=stored.ipfs_metadata_uri,
        )
        return stored

    async def update_tx_hash(self, metadata_uri: str, tx_hash: str) -> ProvenanceRecord:
        """
        Attach the anchoring transaction to a published record.

        Re-attaching the same hash is a no-op. A record is anchored once: a
        different hash raises TxHashAlreadySet and leaves the record as is.
        """
        conn = self._require_conn()
        existing = await self.get_by_metadata_uri(metadata_uri)
        if existing is None:
            raise RecordNotFound(f"No proof record for {metadata_uri}")

        if existing.tx_hash is not None:
            if existing.tx_hash == tx_hash:
                return existing
            raise TxHashAlreadySet(metadata_uri, existing.tx_hash)

        await conn.execute(
            "UPDATE proofs SET tx_hash = ? WHERE ipfs_metadata_uri = ? AND tx_hash IS NULL",
            (tx_hash, metadata_uri),
        )
        await conn.commit()
        logger.info("Anchored proof record {id} with {tx}", id=existing.id, tx=tx_hash)
        return existing.model_copy(update={"tx_hash": tx_hash})

    async def get_by_id(self, record_id: int) -> Optional[ProvenanceRecord]:
        conn = self._require_conn()
        cursor = await conn.execute("SELECT * FROM proofs WHERE id = ?", (record_id,))
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_by_metadata_uri(self, metadata_uri: str) -> Optional[ProvenanceRecord]:
        conn = self._require_conn()
        cursor = await conn.execute(
            "SELECT * FROM proofs WHERE ipfs_metadata_uri = ?", (metadata_uri,)
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_all(self, limit: Optional[int] = None) -> List[ProvenanceRecord]:
        """All records, most recent first"""
        conn = self._require_conn()
        query = "SELECT * FROM proofs ORDER BY timestamp DESC, id DESC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def find_by_hash(self, image_hash: str) -> List[ProvenanceRecord]:
        """Records whose original or transformed hash equals `image_hash`, most recent first"""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT * FROM proofs
            WHERE original_image_hash = ? OR transformed_image_hash = ?
            ORDER BY timestamp DESC, id DESC
            """,
            (image_hash, image_hash),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def find_one_by_hash(
        self,
        image_hash: str,
        match: Optional[str] = None,
    ) -> Optional[ProvenanceRecord]:
        """
        First record for `image_hash`.

        Args:
            image_hash: Hash to look up
            match: "original" or "transformed" to restrict which field must
                match; None accepts either
        """
        if match not in (None, "original", "transformed"):
            raise ValueError(f"Unknown hash match type: {match}")

        for record in await self.find_by_hash(image_hash):
            if match is None:
                return record
            if match == "original" and record.original_image_hash == image_hash:
                return record
            if match == "transformed" and record.transformed_image_hash == image_hash:
                return record
        return None

    async def count(self) -> int:
        conn = self._require_conn()
        cursor = await conn.execute("SELECT COUNT(*) FROM proofs")
        row = await cursor.fetchone()
        return row[0] if row else 0

    def _row_to_record(self, row: aiosqlite.Row) -> ProvenanceRecord:
        return ProvenanceRecord(id=row["id"], **{column: row[column] for column in COLUMNS})
