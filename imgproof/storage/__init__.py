"""Persistence of proof records"""

from imgproof.storage.provenance_store import ProvenanceStore, SQLiteProvenanceStore

__all__ = ["ProvenanceStore", "SQLiteProvenanceStore"]
