"""Clients for the proving service, content-addressed storage and the ledger"""

from imgproof.clients.anchor import ChainAnchor, ContractCall, SignTransaction
from imgproof.clients.ipfs import ArtifactPublisher
from imgproof.clients.prover import ProofClient

__all__ = [
    "ArtifactPublisher",
    "ChainAnchor",
    "ContractCall",
    "ProofClient",
    "SignTransaction",
]
