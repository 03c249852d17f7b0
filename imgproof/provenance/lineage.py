"""
Lineage reconstruction.

Record B is the parent of record A when B.transformed_image_hash equals
A.original_image_hash. Links are over hash values, not record ids, so the
graph can have gaps (ancestors that were never published) and cycles. Both
end the walk and show up as orphan nodes; neither is an error.
"""

from typing import List, Optional, Set

from loguru import logger

from imgproof.core.errors import RecordNotFound
from imgproof.core.models import LineageNode, PlaceholderRecord, ProvenanceRecord
from imgproof.storage.provenance_store import ProvenanceStore


class LineageResolver:
    """
    Walks backward from a record to its oldest known ancestor.

    Read-only; safe to run alongside any lifecycle activity. A record whose
    tx hash has not been attached yet is simply an earlier view of it.
    """

    def __init__(self, store: ProvenanceStore) -> None:
        self.store = store
        self.resolutions = 0

    async def resolve(self, start: ProvenanceRecord) -> List[LineageNode]:
        """
        Reconstruct the ancestor chain of `start`.

        Returns:
            Nodes ordered from the start record (level 0) to the oldest
            ancestor. The last node is flagged `is_orphan` when its parent
            is missing (placeholder record, no proof data) or when the walk
            ran into a circular reference (real record).
        """
        self.resolutions += 1
        nodes = [LineageNode(record=start, level=0)]
        visited: Set[str] = {h for h in (start.original_image_hash, start.transformed_image_hash) if h}

        cursor = start.original_image_hash
        level = 1
        while cursor:
            candidates = await self.store.find_by_hash(cursor)
            parent = self._select_parent(candidates, cursor)

            if parent is None:
                nodes.append(
                    LineageNode(
                        record=PlaceholderRecord(original_image_hash=cursor),
                        level=level,
                        is_orphan=True,
                    )
                )
                break

            if parent.original_image_hash and parent.original_image_hash in visited:
                logger.warning(
                    "Circular lineage at record {id} (hash {hash})",
                    id=parent.id,
                    hash=parent.original_image_hash,
                )
                nodes.append(LineageNode(record=parent, level=level, is_orphan=True))
                break

            nodes.append(LineageNode(record=parent, level=level))
            visited.update(h for h in (parent.original_image_hash, parent.transformed_image_hash) if h)
            cursor = parent.original_image_hash
            level += 1

        logger.debug(
            "Resolved lineage of record {id}: {count} nodes",
            id=start.id,
            count=len(nodes),
        )
        return nodes

    @staticmethod
    def _select_parent(candidates: List[ProvenanceRecord], image_hash: str) -> Optional[ProvenanceRecord]:
        # First match in store order wins when several records claim the same output
        for record in candidates:
            if record.transformed_image_hash == image_hash:
                return record
        return None

    async def resolve_by_id(self, record_id: int) -> List[LineageNode]:
        record = await self.store.get_by_id(record_id)
        if record is None:
            raise RecordNotFound(f"No proof record with id {record_id}")
        return await self.resolve(record)

    async def resolve_by_hash(self, image_hash: str) -> List[LineageNode]:
        """Lineage of the image identified by `image_hash` (the record that produced it)"""
        candidates = await self.store.find_by_hash(image_hash)
        record = self._select_parent(candidates, image_hash)
        if record is None:
            raise RecordNotFound(f"No proof record produced image {image_hash}")
        return await self.resolve(record)
