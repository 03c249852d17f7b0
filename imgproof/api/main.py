"""FastAPI application exposing stored proof records and their lineage"""

from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from imgproof import __version__
from imgproof.core.config import settings
from imgproof.core.errors import DuplicatePublication, RecordNotFound, TxHashAlreadySet
from imgproof.core.logging import setup_logging
from imgproof.core.models import LineageNode, ProvenanceRecord
from imgproof.provenance.lineage import LineageResolver
from imgproof.storage.provenance_store import SQLiteProvenanceStore


# Global state
store: SQLiteProvenanceStore = None
resolver: LineageResolver = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup/shutdown)"""
    global store, resolver

    # Startup
    setup_logging()
    store = SQLiteProvenanceStore(settings.DB_PATH)
    await store.connect()

    resolver = LineageResolver(store)

    yield

    # Shutdown
    await store.close()


app = FastAPI(
    title="Image Provenance",
    description="Proof records and lineage of transformed images",
    version=__version__,
    lifespan=lifespan,
)


# Request/Response models
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateProofRequest(CamelModel):
    """Proof record to store after publication"""
    image_name: Optional[str] = None
    original_image_hash: Optional[str] = None
    transformed_image_hash: Optional[str] = None
    proof: Optional[str] = None
    public_values: Optional[str] = None
    ipfs_image_uri: Optional[str] = None
    ipfs_metadata_uri: Optional[str] = None


class UpdateTxRequest(CamelModel):
    """Transaction hash to attach to a published record"""
    ipfs_metadata_uri: Optional[str] = None
    tx_hash: Optional[str] = None


class RecordResponse(CamelModel):
    success: bool = True
    data: ProvenanceRecord


class RecordListResponse(CamelModel):
    success: bool = True
    data: List[ProvenanceRecord]


class LineageResponse(CamelModel):
    success: bool = True
    data: List[LineageNode]


def _message(status_code: int, message: str, success: bool = False) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": success, "message": message})


def _require_store() -> SQLiteProvenanceStore:
    if not store:
        raise HTTPException(status_code=503, detail="Store not initialized")
    return store


# Endpoints
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Image Provenance",
        "version": __version__,
        "status": "running",
    }


@app.post("/api/proofs")
async def create_proof(request: CreateProofRequest) -> Any:
    """Store a published proof record (unique on its metadata uri)"""
    db = _require_store()
    if not (request.proof and request.public_values and request.ipfs_metadata_uri and request.image_name):
        return _message(400, "Missing required fields")

    record = ProvenanceRecord(
        image_name=request.image_name,
        original_image_hash=request.original_image_hash or None,
        transformed_image_hash=request.transformed_image_hash or None,
        proof=request.proof,
        public_values=request.public_values,
        ipfs_image_uri=request.ipfs_image_uri or None,
        ipfs_metadata_uri=request.ipfs_metadata_uri,
    )
    try:
        stored = await db.create(record)
    except DuplicatePublication:
        return _message(409, "A proof with this IPFS metadata URI already exists")

    return JSONResponse(
        status_code=201,
        content={"success": True, "message": "Proof saved successfully", "id": stored.id},
    )


@app.get("/api/proofs", response_model=RecordListResponse, response_model_by_alias=True)
async def list_proofs(limit: Optional[int] = None):
    """All proof records, most recent first"""
    db = _require_store()
    return RecordListResponse(data=await db.get_all(limit=limit))


@app.get("/api/proofs/by-hash", response_model=RecordListResponse, response_model_by_alias=True)
async def proofs_by_hash(hash: Optional[str] = None) -> Any:
    """Records whose original or transformed image hash matches"""
    db = _require_store()
    if not hash:
        return _message(400, "Hash parameter is required")
    return RecordListResponse(data=await db.find_by_hash(hash))


@app.post("/api/proofs/update-tx")
async def update_tx(request: UpdateTxRequest) -> Any:
    """Attach the anchoring transaction hash to a record"""
    db = _require_store()
    if not (request.ipfs_metadata_uri and request.tx_hash):
        return _message(400, "Missing required fields")

    try:
        await db.update_tx_hash(request.ipfs_metadata_uri, request.tx_hash)
    except RecordNotFound:
        return _message(404, "No proof found with this IPFS metadata URI")
    except TxHashAlreadySet as exc:
        return _message(409, exc.message)

    return _message(200, "Proof updated successfully", success=True)


@app.get("/api/proofs/{proof_id}", response_model=RecordResponse, response_model_by_alias=True)
async def get_proof(proof_id: int) -> Any:
    """Single proof record"""
    db = _require_store()
    record = await db.get_by_id(proof_id)
    if record is None:
        return _message(404, "Proof not found")
    return RecordResponse(data=record)


@app.get("/api/proofs/{proof_id}/lineage", response_model=LineageResponse, response_model_by_alias=True)
async def get_lineage(proof_id: int) -> Any:
    """Ancestor chain of a proof record, starting with the record itself"""
    if not resolver:
        raise HTTPException(status_code=503, detail="Resolver not initialized")
    try:
        nodes = await resolver.resolve_by_id(proof_id)
    except RecordNotFound:
        return _message(404, "Proof not found")
    return LineageResponse(data=nodes)
