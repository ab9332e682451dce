import asyncio
from unittest import mock

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from eth_account import Account
from web3 import AsyncEthereumTesterProvider, AsyncHTTPProvider, AsyncWeb3, Web3

from wallet.connection import Connection, WalletContext, load_contract_abi
from wallet.signals import connection_changed
from wallet.validators import validate_ethereum_address


BOARD_ADDRESS = Web3.to_checksum_address("0x" + "42" * 20)


# guide: https://web3py.readthedocs.io/en/stable/providers.html#ethereumtesterprovider


class BaseTestCase(SimpleTestCase):
    def setUp(self):
        self.provider = AsyncEthereumTesterProvider()
        self.w3 = AsyncWeb3(self.provider)
        self.eth_tester = self.provider.ethereum_tester
        self.accounts = self.eth_tester.get_accounts()
        self.abi = load_contract_abi("contracts/QuestionBoard.json")

    def make_context(self, **kwargs):
        kwargs.setdefault("w3", self.w3)
        kwargs.setdefault("contract_address", BOARD_ADDRESS)
        kwargs.setdefault("abi", self.abi)
        context = WalletContext(**kwargs)

        # record every change this context reports
        changes = []

        async def receiver(sender, **kwargs):
            changes.append(kwargs)

        connection_changed.connect(receiver, sender=context, weak=False)
        self.addCleanup(connection_changed.disconnect, receiver, sender=context)
        return context, changes


class TestConnect(BaseTestCase):
    async def test_connect(self):
        context, changes = self.make_context()
        connection = await context.connect()
        self.assertEqual(connection.account, self.accounts[0])
        self.assertEqual(connection.contract.address, BOARD_ADDRESS)
        self.assertEqual(connection.chain_id, await self.w3.eth.chain_id)
        self.assertTrue(context.is_connected)
        self.assertIs(context.contract, connection.contract)
        self.assertEqual(self.w3.eth.default_account, self.accounts[0])

        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0]["account"], self.accounts[0])
        self.assertIs(changes[0]["contract"], connection.contract)
        self.assertEqual(changes[0]["connection"], connection)

    async def test_reconnect_without_change_is_silent(self):
        context, changes = self.make_context()
        first = await context.connect()
        second = await context.connect()
        self.assertIs(first, second)
        self.assertEqual(len(changes), 1)

    async def test_failing_receiver_does_not_break_connect(self):
        context, changes = self.make_context()

        async def broken(sender, **kwargs):
            raise RuntimeError("listener gone")

        connection_changed.connect(broken, sender=context, weak=False)
        self.addCleanup(connection_changed.disconnect, broken, sender=context)

        connection = await context.connect()
        self.assertEqual(connection.account, self.accounts[0])
        self.assertIs(context.contract, connection.contract)
        self.assertTrue(context.is_connected)
        # the other receiver was still told
        self.assertEqual(len(changes), 1)

    async def test_preferred_account(self):
        context, _ = self.make_context(account=self.accounts[3])
        await context.connect()
        self.assertEqual(context.account, self.accounts[3])

    async def test_preferred_account_not_in_wallet(self):
        stranger = Account.create().address
        context, _ = self.make_context(account=stranger)
        await context.connect()
        self.assertEqual(context.account, self.accounts[0])

    async def test_contract_handle_is_usable(self):
        context, _ = self.make_context()
        await context.connect()
        names = {f["name"] for f in self.abi if f["type"] == "function"}
        for name in ["questionCount", "questions", "getAnswers", "postQuestion"]:
            self.assertIn(name, names)
            self.assertTrue(hasattr(context.contract.functions, name))


class TestNotConnected(BaseTestCase):
    async def test_wrong_network(self):
        context, changes = self.make_context(chain_id=1)
        connection = await context.connect()
        self.assertEqual(connection.account, self.accounts[0])
        self.assertIsNone(connection.contract)
        self.assertEqual(len(changes), 1)
        self.assertIsNone(changes[0]["contract"])

    async def test_chain_change_without_contract_is_silent(self):
        context, changes = self.make_context(chain_id=1)
        await context.connect()
        self.assertEqual(len(changes), 1)

        # still the wrong network, just a different one
        with mock.patch.object(
            context,
            "_read_wallet",
            mock.AsyncMock(return_value=([self.accounts[0]], 5)),
        ):
            connection = await context.connect()
        self.assertEqual(len(changes), 1)
        self.assertIsNone(connection.contract)
        self.assertEqual(connection.chain_id, 5)
        self.assertEqual(context.connection.chain_id, 5)

    async def test_no_contract_address(self):
        context = WalletContext(w3=self.w3, abi=self.abi)
        context.contract_address = None
        connection = await context.connect()
        self.assertIsNone(connection.contract)

    async def test_unreachable_provider(self):
        w3 = AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:9"))
        context, changes = self.make_context(w3=w3)
        connection = await context.connect()
        self.assertEqual(connection, Connection())
        self.assertFalse(context.is_connected)
        # nothing changed, so nobody is told
        self.assertEqual(changes, [])

    async def test_disconnect(self):
        context, changes = self.make_context()
        await context.connect()
        connection = await context.disconnect()
        self.assertEqual(connection, Connection())
        self.assertIsNone(context.account)
        self.assertIsNone(context.contract)
        self.assertEqual(len(changes), 2)
        self.assertIsNone(changes[1]["account"])
        self.assertIsNone(changes[1]["contract"])


class TestAccountChanges(BaseTestCase):
    async def test_switch_account(self):
        context, changes = self.make_context()
        first = await context.connect()
        second = await context.switch_account(self.accounts[2])
        self.assertEqual(second.account, self.accounts[2])
        # a new binding always comes with a new handle
        self.assertIsNot(second.contract, first.contract)
        self.assertEqual(second.contract.address, BOARD_ADDRESS)
        self.assertEqual(len(changes), 2)

    async def test_switch_account_invalid_address(self):
        context, changes = self.make_context()
        await context.connect()
        with self.assertRaises(ValidationError):
            await context.switch_account("0xnotanaddress")
        self.assertEqual(context.account, self.accounts[0])
        self.assertEqual(len(changes), 1)

    async def test_watch_picks_up_new_account(self):
        key = "0x" + "12" * 32
        address = Account.from_key(key).address
        context, changes = self.make_context(account=address)
        await context.connect()
        self.assertEqual(context.account, self.accounts[0])

        watcher = asyncio.ensure_future(context.watch(interval=0))
        self.eth_tester.add_account(key)
        for _ in range(50):
            if len(changes) == 2:
                break
            await asyncio.sleep(0.01)
        watcher.cancel()

        self.assertEqual(context.account, address)
        self.assertEqual(changes[1]["account"], address)

    async def test_watch_leaves_disconnected_context(self):
        context, changes = self.make_context()
        watcher = asyncio.ensure_future(context.watch(interval=0))
        await asyncio.sleep(0.05)
        watcher.cancel()
        self.assertFalse(context.is_connected)
        self.assertEqual(changes, [])


class TestValidators(SimpleTestCase):
    def test_checksummed_address(self):
        validate_ethereum_address(BOARD_ADDRESS)

    def test_invalid_addresses(self):
        for value in ["0x1234", BOARD_ADDRESS.lower().replace("0x", "0X"), "hello"]:
            with self.assertRaises(ValidationError):
                validate_ethereum_address(value)
