"""On-chain anchoring of proofs through the image verifier contract"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from loguru import logger

from imgproof.core.config import settings
from imgproof.core.errors import LedgerTransactionError

VERIFY_FUNCTION = "verifyImageTransformProof"


@dataclass(frozen=True)
class ContractCall:
    """Verification call handed to the caller's signer"""

    address: str
    function_name: str
    args: Tuple[str, str]


# Signs and broadcasts a contract call, returns the transaction hash
SignTransaction = Callable[[ContractCall], Awaitable[str]]


class ChainAnchor:
    """
    Thin adapter around "submit verification call, get a transaction hash back".

    Signing and broadcasting belong to the caller's wallet session and are
    injected per call. There is no retry here: resubmitting is not idempotent
    on the ledger, so the caller decides.
    """

    def __init__(self, verifier_address: Optional[str] = None, explorer_url: Optional[str] = None) -> None:
        self.verifier_address = verifier_address or settings.VERIFIER_ADDRESS
        self.explorer = (explorer_url or settings.EXPLORER_TX_URL).rstrip("/")

    def build_call(self, public_values: str, proof: str) -> ContractCall:
        return ContractCall(
            address=self.verifier_address,
            function_name=VERIFY_FUNCTION,
            args=(public_values, proof),
        )

    async def anchor(self, public_values: str, proof: str, sign_transaction: SignTransaction) -> str:
        """
        Submit `(public_values, proof)` to the verifier contract.

        Returns:
            Transaction hash once broadcast (not once finalized)

        Raises:
            LedgerTransactionError: the signer failed; its message is kept verbatim
        """
        call = self.build_call(public_values, proof)
        logger.info("Submitting {fn} to {address}", fn=call.function_name, address=call.address)

        try:
            tx_hash = await sign_transaction(call)
        except LedgerTransactionError:
            raise
        except Exception as exc:
            logger.error("Verification transaction failed: {error}", error=str(exc))
            raise LedgerTransactionError(str(exc)) from exc

        if not isinstance(tx_hash, str) or not tx_hash:
            raise LedgerTransactionError(f"Signer returned no transaction hash: {tx_hash!r}")

        logger.info("Verification transaction broadcast: {tx}", tx=tx_hash)
        return tx_hash

    def explorer_url(self, tx_hash: Optional[str]) -> str:
        if not tx_hash:
            return ""
        return f"{self.explorer}/{tx_hash}"
