"""Wallet signature verification - EOA recovery plus ERC-1271 contract wallets."""

import logging
from datetime import datetime
from typing import Protocol

from eth_abi import encode as abi_encode
from eth_account.messages import defunct_hash_message
from eth_utils import to_checksum_address
from siwe import SiweMessage
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError

from cavecrawl.config import settings
from cavecrawl.core.errors import SignatureVerificationFailed
from cavecrawl.core.siwe import SignatureKind, check_message, classify_signature

logger = logging.getLogger(__name__)

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
ERC1271_SELECTOR = bytes.fromhex("1626ba7e")
ERC1271_MAGIC_VALUE = ERC1271_SELECTOR


class ContractSignatureValidator(Protocol):
    async def is_deployed(self, chain_id: int, address: str) -> bool: ...

    async def is_valid_signature(
        self, chain_id: int, address: str, message_hash: bytes, signature: bytes
    ) -> bool: ...


class Web3SignatureValidator:
    """Asks the wallet contract itself, over JSON-RPC, whether a signature is valid."""

    def __init__(self, rpc_urls: dict[int, str] | None = None):
        self.rpc_urls = settings.RPC_URLS if rpc_urls is None else rpc_urls
        self._clients: dict[int, AsyncWeb3] = {}

    def _web3(self, chain_id: int) -> AsyncWeb3:
        if chain_id not in self._clients:
            url = self.rpc_urls.get(chain_id)
            if not url:
                raise SignatureVerificationFailed(f"No RPC configured for chain {chain_id}")
            self._clients[chain_id] = AsyncWeb3(AsyncHTTPProvider(url))
        return self._clients[chain_id]

    async def is_deployed(self, chain_id: int, address: str) -> bool:
        code = await self._web3(chain_id).eth.get_code(to_checksum_address(address))
        return len(code) > 0

    async def is_valid_signature(
        self, chain_id: int, address: str, message_hash: bytes, signature: bytes
    ) -> bool:
        calldata = ERC1271_SELECTOR + abi_encode(["bytes32", "bytes"], [message_hash, signature])
        try:
            result = await self._web3(chain_id).eth.call(
                {"to": to_checksum_address(address), "data": calldata}
            )
        except ContractLogicError as e:
            logger.info("isValidSignature reverted for %s: %s", address, e)
            return False
        return bytes(result)[:4] == ERC1271_MAGIC_VALUE


class SignatureVerifier:
    def __init__(self, validator: ContractSignatureValidator | None = None):
        self.validator = validator or Web3SignatureValidator()

    async def verify(
        self,
        message: SiweMessage,
        signature: str,
        nonce: str,
        domain: str = "",
        now: datetime | None = None,
    ) -> None:
        """Raise unless ``message.address`` signed ``message`` and its fields check out."""
        envelope = classify_signature(signature)
        address = to_checksum_address(message.address)
        signed_by_key = check_message(message, envelope.signature, nonce, domain, now)
        message_hash = bytes(defunct_hash_message(text=message.prepare_message()))

        if envelope.kind in (SignatureKind.RAW, SignatureKind.ABI_WRAPPED):
            if signed_by_key:
                return
            # Not the key-pair signer: the address may be a contract wallet
            if await self.validator.is_deployed(message.chain_id, address) and (
                await self.validator.is_valid_signature(
                    message.chain_id, address, message_hash, envelope.signature
                )
            ):
                return
            raise SignatureVerificationFailed()

        # ERC-6492: only wallets that already exist on-chain can be checked
        if not await self.validator.is_deployed(message.chain_id, address):
            logger.info("Rejecting ERC-6492 signature for undeployed wallet %s", address)
            raise SignatureVerificationFailed("Wallet contract is not deployed")
        if await self.validator.is_valid_signature(
            message.chain_id, address, message_hash, envelope.signature
        ):
            return
        raise SignatureVerificationFailed()
