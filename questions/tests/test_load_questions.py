import asyncio
from decimal import Decimal
from unittest import mock

from questions.board import QuestionBoard
from questions.notifications import ERROR
from questions.tests.base import BoardTestCase
from questions.tests.fakes import ALICE, FakeContext, raw_question, settle


class TestLoadQuestions(BoardTestCase):
    async def test_load_questions(self):
        success, message = await self.board.load_questions()
        self.assertTrue(success)
        self.assertEqual([q.id for q in self.board.questions], [0, 1, 2])
        question = self.board.questions[1]
        self.assertEqual(question.content, "Question 1?")
        self.assertEqual(question.author, ALICE)
        self.assertFalse(question.answered)
        self.assertFalse(self.board.loading.questions)
        self.assertIsNotNone(self.board.synced_at)
        self.assertEqual(self.notices, [])

    async def test_index_order_regardless_of_completion_order(self):
        gates = {i: self.contract.hold("questions", i) for i in range(3)}
        task = asyncio.ensure_future(self.board.load_questions())
        await settle()
        # every read is in flight at once
        self.assertEqual(self.contract.count("questions"), 3)
        self.assertTrue(self.board.loading.questions)

        for i in (2, 0, 1):
            gates[i].set()
            await settle()
        success, _ = await task
        self.assertTrue(success)
        self.assertEqual([q.id for q in self.board.questions], [0, 1, 2])
        self.assertFalse(self.board.loading.questions)

    async def test_no_questions(self):
        self.contract.questions = []
        success, _ = await self.board.load_questions()
        self.assertTrue(success)
        self.assertEqual(self.board.questions, ())

    async def test_many_questions(self):
        self.contract.questions = [raw_question(i) for i in range(25)]
        await self.board.load_questions()
        self.assertEqual([q.id for q in self.board.questions], list(range(25)))

    async def test_bounty_in_display_unit(self):
        self.contract.questions = [
            raw_question(0, bounty=5 * 10**17),
            raw_question(1, bounty=0),
        ]
        await self.board.load_questions()
        self.assertEqual(self.board.questions[0].bounty, Decimal("0.5"))
        self.assertEqual(self.board.questions[1].bounty, Decimal("0"))

    async def test_failed_load_keeps_questions(self):
        await self.board.load_questions()
        before = self.board.questions
        self.contract.questions.append(raw_question(3))
        self.contract.fail("questions", ConnectionError("node went away"))

        success, message = await self.board.load_questions()
        self.assertFalse(success)
        self.assertIs(self.board.questions, before)
        self.assertFalse(self.board.loading.questions)
        self.assertEqual(self.notices, [(ERROR, "Failed to load questions")])

    async def test_failed_count_read(self):
        self.contract.fail("questionCount", ValueError("execution reverted"))
        success, _ = await self.board.load_questions()
        self.assertFalse(success)
        self.assertEqual(self.board.questions, ())
        self.assertEqual(self.contract.count("questions"), 0)
        self.assertEqual(self.notices, [(ERROR, "Failed to load questions")])

    async def test_malformed_record_is_a_read_failure(self):
        self.contract.questions = [raw_question(0), (1, "no author", None, 1, False)]
        success, _ = await self.board.load_questions()
        self.assertFalse(success)
        self.assertEqual(self.board.questions, ())
        self.assertEqual(self.notices, [(ERROR, "Failed to load questions")])

    async def test_no_contract_is_a_noop(self):
        board_without_contract = QuestionBoard(FakeContext())
        self.addCleanup(board_without_contract.close)
        success, message = await board_without_contract.load_questions()
        self.assertFalse(success)
        self.assertEqual(message, "No contract connected.")
        self.assertFalse(board_without_contract.loading.questions)
        self.assertEqual(self.contract.calls, [])

    async def test_first_question_as_sentinel(self):
        await self.board.load_questions()
        self.assertEqual([q.id for q in self.board.visible_questions], [0, 1, 2])
        with mock.patch("questions.board.QUESTIONS_FIRST_IS_SENTINEL", True):
            self.assertEqual([q.id for q in self.board.visible_questions], [1, 2])
        # the local sequence itself is never trimmed
        self.assertEqual(len(self.board.questions), 3)

    async def test_snapshot(self):
        self.contract.questions = [raw_question(0, bounty=25 * 10**16)]
        await self.board.load_questions()
        snapshot = self.board.snapshot()
        self.assertEqual(snapshot["account"], ALICE)
        self.assertEqual(snapshot["contractAddress"], self.contract.address)
        self.assertEqual(snapshot["questions"][0]["bounty"], "0.25")
        self.assertEqual(snapshot["questions"][0]["id"], 0)
        self.assertEqual(snapshot["answers"], {})
        self.assertFalse(snapshot["loading"]["questions"])
