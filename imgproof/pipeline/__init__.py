"""Editing sessions and the proof lifecycle"""

from imgproof.pipeline.lifecycle import ProofLifecycleController
from imgproof.pipeline.session import ProofSession, SessionStore

__all__ = ["ProofLifecycleController", "ProofSession", "SessionStore"]
