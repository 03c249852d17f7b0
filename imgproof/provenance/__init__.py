"""
Image lineage

Every published edit links the image it started from to the image it
produced. Following those hash links backwards rebuilds an image's ancestry.
"""

from imgproof.provenance.lineage import LineageResolver

__all__ = ["LineageResolver"]
