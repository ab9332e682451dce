"""
Wallet and contract binding for the question board client.

A WalletContext owns the live association between the user's wallet session
and the QuestionBoard contract handle. Consumers read the current account and
contract from it, and receive ``connection_changed`` whenever the wallet reports
an account switch, a network switch, a (re)connection or a disconnection.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import NamedTuple, Optional

from django.conf import settings
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from wallet.signals import connection_changed
from wallet.validators import validate_ethereum_address
from .settings import (
    WALLET_PROVIDER_URL,
    WALLET_CHAIN_ID,
    WALLET_ACCOUNT,
    WALLET_POLL_INTERVAL,
    QUESTION_BOARD_ADDRESS,
    QUESTION_BOARD_ABI,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.StreamHandler())
logging.basicConfig(
    filename="bountyboard.log",
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def load_contract_abi(path):
    """
    Load a contract ABI from a compiled contract JSON file or a bare ABI list.

    Relative paths are resolved against the project's BASE_DIR.
    """
    path = Path(path)
    if not path.is_absolute():
        path = Path(getattr(settings, "BASE_DIR", Path.cwd())) / path
    with open(path, "rb") as f:
        compiled = json.load(f)
    if isinstance(compiled, dict):
        return compiled["abi"]
    return compiled


class Connection(NamedTuple):
    """The current binding. Absent parts are None."""

    account: Optional[str] = None
    contract: Optional[object] = None
    chain_id: Optional[int] = None


class WalletContext:
    """
    Binds the user's wallet to the deployed QuestionBoard contract.

    A missing wallet, an empty account list or a rejected request leaves the
    context in the "not connected" state; this is not an error. The context
    never reconnects on its own.
    """

    def __init__(
        self, w3=None, contract_address=None, abi=None, chain_id=None, account=None
    ):
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(WALLET_PROVIDER_URL))
        self.contract_address = contract_address or QUESTION_BOARD_ADDRESS
        self.chain_id = chain_id if chain_id is not None else WALLET_CHAIN_ID
        self.preferred_account = account or WALLET_ACCOUNT
        self._abi = abi
        self.connection = Connection()

    @property
    def account(self):
        return self.connection.account

    @property
    def contract(self):
        return self.connection.contract

    @property
    def is_connected(self):
        return self.connection.account is not None

    @property
    def abi(self):
        if self._abi is None:
            self._abi = load_contract_abi(QUESTION_BOARD_ABI)
        return self._abi

    async def connect(self):
        """
        Establish or refresh the binding to the wallet and the contract.

        Returns:
            Connection: the binding in effect after the handshake
        """
        try:
            accounts, chain_id = await self._read_wallet()
        except (Web3Exception, ValueError, OSError, asyncio.TimeoutError) as e:
            logger.warning(json.dumps({"action": "connect", "error": str(e)}))
            accounts, chain_id = [], None
        return await self._bind(self._pick_account(accounts), chain_id)

    async def disconnect(self):
        return await self._bind(None, None)

    async def switch_account(self, address):
        """
        Prefer another wallet account and re-bind.

        Raises:
            ValidationError: If address is not a checksummed Ethereum address
        """
        validate_ethereum_address(address)
        self.preferred_account = address
        return await self.connect()

    async def watch(self, interval=None):
        """
        Poll the wallet for account and network changes while connected.

        Runs until cancelled. A disconnected context is left alone.
        """
        interval = WALLET_POLL_INTERVAL if interval is None else interval
        while True:
            await asyncio.sleep(interval)
            if self.is_connected:
                await self.connect()

    async def _read_wallet(self):
        if not await self.w3.is_connected():
            logger.warning(
                json.dumps({"action": "connect", "error": "provider unavailable"})
            )
            return [], None
        accounts = await self.w3.eth.accounts
        chain_id = await self.w3.eth.chain_id
        return list(accounts), chain_id

    def _pick_account(self, accounts):
        if not accounts:
            return None
        if self.preferred_account:
            for a in accounts:
                if a.lower() == self.preferred_account.lower():
                    return Web3.to_checksum_address(a)
        return Web3.to_checksum_address(accounts[0])

    def _contract_address_for(self, account, chain_id):
        if account is None:
            return None
        if not self.contract_address:
            logger.warning(
                json.dumps({"action": "bind", "error": "no contract address"})
            )
            return None
        if self.chain_id is not None and chain_id != self.chain_id:
            logger.warning(
                json.dumps(
                    {
                        "action": "bind",
                        "error": "wrong network",
                        "chain_id": chain_id,
                        "expected": self.chain_id,
                    }
                )
            )
            return None
        return Web3.to_checksum_address(self.contract_address)

    async def _bind(self, account, chain_id):
        address = self._contract_address_for(account, chain_id)
        current = self.connection
        current_address = (
            current.contract.address if current.contract is not None else None
        )
        if (account, address) == (current.account, current_address):
            if address is None:
                # still no contract; a new chain id alone is not a new binding
                if chain_id != current.chain_id:
                    self.connection = current._replace(chain_id=chain_id)
                return self.connection
            if chain_id == current.chain_id:
                return current

        contract = None
        if address is not None:
            # fresh handle per binding so consumers can detect the switch
            contract = self.w3.eth.contract(
                address=address, abi=self.abi, decode_tuples=True
            )
            self.w3.eth.default_account = account
        self.connection = Connection(account, contract, chain_id)

        logger.info(
            json.dumps(
                {
                    "action": "bind",
                    "account": account,
                    "contractAddress": address,
                    "chain_id": chain_id,
                }
            )
        )
        responses = await connection_changed.asend_robust(
            sender=self,
            connection=self.connection,
            account=account,
            contract=contract,
        )
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.warning(
                    "connection_changed receiver %r failed: %s", receiver, response
                )
        return self.connection
