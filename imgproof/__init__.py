"""Image provenance: proof lifecycle and lineage reconstruction"""

__version__ = "0.1.0"
