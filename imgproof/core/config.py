"""Configuration management using Pydantic Settings"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent
    DB_PATH: Path = PROJECT_ROOT / "data" / "proofs.db"

    # Proving service
    PROVER_URL: str = "http://localhost:3001"
    PROVER_TIMEOUT: float = 600.0

    # Offline/dev only: serve a canned proof when the prover is unreachable
    ALLOW_MOCK_PROOFS: bool = False
    MOCK_RESPONSE_PATH: Path = Path(__file__).parent.parent / "data" / "mock_proof_response.json"

    # Content-addressed storage (Pinata)
    PINATA_API_URL: str = "https://api.pinata.cloud"
    PINATA_JWT: str = ""
    IPFS_GATEWAY_URL: str = "https://gateway.pinata.cloud/ipfs"
    STORAGE_TIMEOUT: float = 60.0

    # Ledger
    VERIFIER_ADDRESS: str = "0x1af705a92f2a610f6c99a4dd0421d4dceaff33a8"
    EXPLORER_TX_URL: str = "https://sepolia.basescan.org/tx"

    # Logging
    LOG_LEVEL: str = "INFO"


settings = Settings()
