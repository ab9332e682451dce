"""
Synchronization and transaction controller for the question board.

QuestionBoard mirrors the contract's questions, and the answers of the
questions the user has expanded, into local state. It drives write
transactions through submit, pending and confirmed/failed, and raises
user-facing notices along the way. All ledger access goes through the contract
handle of a WalletContext; local state only changes by re-reading the contract.
"""

import asyncio
import dataclasses
import datetime
import itertools
import json
import logging

import pytz
from web3 import Web3

from wallet.signals import connection_changed
from questions.models import (
    HIDDEN,
    LOADING,
    Draft,
    Hidden,
    Loading,
    LoadingState,
    Shown,
    SubmissionState,
)
from questions.notifications import notify, SUCCESS, WARNING, ERROR
from questions.serializers import (
    QuestionSerializer,
    AnswerSerializer,
    PostQuestionSerializer,
    PostAnswerSerializer,
    AcceptAnswerSerializer,
    first_error,
)
from .settings import QUESTIONS_CONFIRMATION_TIMEOUT, QUESTIONS_FIRST_IS_SENTINEL

logger = logging.getLogger(__name__)
logger.addHandler(logging.StreamHandler())
logging.basicConfig(
    filename="bountyboard.log",
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class TransactionReverted(Exception):
    """A mined transaction whose receipt reports failure."""


def _blank(value):
    return value is None or str(value).strip() == ""


class QuestionBoard:
    """
    Local mirror of the QuestionBoard contract for one WalletContext.

    The board reloads its questions every time the context reports a new
    (account, contract) binding. Operations return ``(success, message)`` and
    never raise for ledger or validation failures; the user is told through
    ``questions.notifications.notice``.
    """

    def __init__(self, context):
        self.context = context
        self.questions = ()
        # question id -> Loading | Shown; a missing id is Hidden
        self.answers = {}
        self.draft = Draft()
        self.submission = SubmissionState.IDLE
        self.synced_at = None
        self._questions_loading = False
        self._load_tokens = itertools.count(1)
        self._latest_load = 0
        # reloads started by connection changes
        self._tasks = set()
        connection_changed.connect(self._on_connection_changed, sender=context)

    def close(self):
        connection_changed.disconnect(self._on_connection_changed, sender=self.context)
        for task in self._tasks:
            task.cancel()

    async def join(self):
        """Wait for the reloads started by connection changes to settle."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def account(self):
        return self.context.account

    @property
    def contract(self):
        return self.context.contract

    @property
    def loading(self):
        return LoadingState(
            questions=self._questions_loading,
            answers={
                qid: True
                for qid, view in self.answers.items()
                if isinstance(view, Loading)
            },
            transaction=self.submission is SubmissionState.SUBMITTING,
        )

    @property
    def answer_cache(self):
        """Answers of every question currently shown, keyed by question id."""
        return {
            qid: view.answers
            for qid, view in self.answers.items()
            if isinstance(view, Shown)
        }

    @property
    def visible_questions(self):
        if QUESTIONS_FIRST_IS_SENTINEL:
            return self.questions[1:]
        return self.questions

    def answer_view(self, question_id):
        return self.answers.get(question_id, HIDDEN)

    def snapshot(self):
        """Render the board for a consumer that cannot hold the records."""
        return {
            "account": self.account,
            "contractAddress": self.contract.address if self.contract else None,
            "questions": QuestionSerializer(self.visible_questions, many=True).data,
            "answers": {
                qid: AnswerSerializer(answers, many=True).data
                for qid, answers in self.answer_cache.items()
            },
            "loading": dataclasses.asdict(self.loading),
            "draft": dataclasses.asdict(self.draft),
            "syncedAt": self.synced_at.isoformat() if self.synced_at else None,
        }

    async def _on_connection_changed(self, sender, contract=None, **kwargs):
        # answers were read under the old binding
        self.answers = {}
        if contract is None:
            self.questions = ()
            self.synced_at = None
        # the reload runs on its own so the context never waits on the ledger
        task = asyncio.ensure_future(self.load_questions())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current_load(self, contract, token):
        return contract is self.contract and token == self._latest_load

    # reads

    async def load_questions(self):
        """
        Re-read every question from the contract and replace the local sequence.

        Reads for all indices are issued together; the result keeps index order.
        A failed or superseded load leaves the current sequence untouched.
        """
        contract = self.contract
        if contract is None:
            return False, "No contract connected."
        token = next(self._load_tokens)
        self._latest_load = token
        self._questions_loading = True
        try:
            questions = await self._read_questions(contract)
        except Exception:
            logger.exception(
                json.dumps(
                    {
                        "action": "load_questions",
                        "account": self.account,
                        "contractAddress": contract.address,
                    }
                )
            )
            if self._is_current_load(contract, token):
                await notify(self, ERROR, "Failed to load questions")
            return False, "Failed to load questions"
        finally:
            if token == self._latest_load:
                self._questions_loading = False

        if not self._is_current_load(contract, token):
            logger.debug(
                json.dumps(
                    {
                        "action": "load_questions",
                        "contractAddress": contract.address,
                        "stale": True,
                    }
                )
            )
            return False, "Discarded stale questions"
        self.questions = questions
        self.synced_at = datetime.datetime.now(tz=pytz.UTC)
        logger.info(
            json.dumps(
                {
                    "action": "load_questions",
                    "account": self.account,
                    "contractAddress": contract.address,
                    "count": len(questions),
                }
            )
        )
        return True, "Success"

    async def _read_questions(self, contract):
        count = int(await contract.functions.questionCount().call())
        results = await asyncio.gather(
            *(contract.functions.questions(i).call() for i in range(count)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return tuple(QuestionSerializer.from_ledger(raw) for raw in results)

    async def toggle_answers(self, question_id):
        """
        Show or hide the answers of a question.

        Hiding evicts the cached answers, so showing again always re-reads them.
        """
        match self.answer_view(question_id):
            case Shown():
                del self.answers[question_id]
                logger.info(
                    json.dumps({"action": "hide_answers", "question": question_id})
                )
                return True, "Answers hidden"
            case Hidden() | Loading():
                return await self._fetch_answers(question_id)

    async def _fetch_answers(self, question_id):
        contract = self.contract
        if contract is None:
            return False, "No contract connected."
        self.answers[question_id] = LOADING
        try:
            raw = await contract.functions.getAnswers(question_id).call()
            answers = tuple(AnswerSerializer.from_ledger(a) for a in raw)
        except Exception:
            logger.exception(
                json.dumps(
                    {
                        "action": "show_answers",
                        "question": question_id,
                        "contractAddress": contract.address,
                    }
                )
            )
            if contract is self.contract:
                await notify(self, ERROR, "Failed to load answers")
            return False, "Failed to load answers"
        finally:
            # failed, cancelled or superseded: never leave the id stuck loading
            if contract is self.contract and isinstance(
                self.answers.get(question_id), Loading
            ):
                del self.answers[question_id]

        if contract is not self.contract:
            logger.debug(
                json.dumps(
                    {"action": "show_answers", "question": question_id, "stale": True}
                )
            )
            return False, "Discarded stale answers"
        self.answers[question_id] = Shown(answers)
        logger.info(
            json.dumps(
                {
                    "action": "show_answers",
                    "question": question_id,
                    "count": len(answers),
                }
            )
        )
        return True, "Answers shown"

    # writes

    async def post_question(self, content=None, bounty=None):
        """
        Post a question with a bounty attached as transaction value.

        Args:
            content: question text; defaults to the draft
            bounty: amount in the display unit; defaults to the draft

        Returns:
            tuple: (success_bool, message)

        Note:
            The draft is cleared only once the transaction is confirmed. The
            new question shows up through the reload that follows, never
            through a local insert.
        """
        if self.submission is SubmissionState.SUBMITTING:
            return await self._reject(WARNING, "A transaction is already in progress")
        if content is not None or bounty is not None:
            self.draft = Draft(
                content=self.draft.content if content is None else content,
                bounty=self.draft.bounty if bounty is None else bounty,
            )
        content, bounty = self.draft.content, self.draft.bounty

        if _blank(content) or _blank(bounty):
            return await self._reject(WARNING, "Please fill all fields")
        if self.contract is None:
            return await self._reject(ERROR, "Please connect wallet first")
        serializer = PostQuestionSerializer(data={"content": content, "bounty": bounty})
        if not serializer.is_valid():
            return await self._reject(ERROR, first_error(serializer.errors))
        data = serializer.validated_data

        def send(contract):
            return contract.functions.postQuestion(data["content"]).transact(
                {"from": self.account, "value": data["value"]}
            )

        def clear_draft():
            self.draft = Draft()

        return await self._submit(
            "post_question",
            send,
            "Question posted!",
            on_confirmed=clear_draft,
            reconcile=self.load_questions,
        )

    async def post_answer(self, question_id, content):
        if self.submission is SubmissionState.SUBMITTING:
            return await self._reject(WARNING, "A transaction is already in progress")
        if _blank(question_id) or _blank(content):
            return await self._reject(WARNING, "Please fill all fields")
        if self.contract is None:
            return await self._reject(ERROR, "Please connect wallet first")
        serializer = PostAnswerSerializer(
            data={"questionId": question_id, "content": content}
        )
        if not serializer.is_valid():
            return await self._reject(ERROR, first_error(serializer.errors))
        data = serializer.validated_data

        def send(contract):
            return contract.functions.postAnswer(
                data["questionId"], data["content"]
            ).transact({"from": self.account})

        return await self._submit(
            "post_answer",
            send,
            "Answer posted!",
            reconcile=lambda: self._reconcile_question(data["questionId"]),
        )

    async def accept_answer(self, question_id, answer_id):
        """Accept an answer, releasing the question's bounty to its author."""
        if self.submission is SubmissionState.SUBMITTING:
            return await self._reject(WARNING, "A transaction is already in progress")
        if self.contract is None:
            return await self._reject(ERROR, "Please connect wallet first")
        serializer = AcceptAnswerSerializer(
            data={"questionId": question_id, "answerId": answer_id}
        )
        if not serializer.is_valid():
            return await self._reject(ERROR, first_error(serializer.errors))
        data = serializer.validated_data

        def send(contract):
            return contract.functions.acceptAnswer(
                data["questionId"], data["answerId"]
            ).transact({"from": self.account})

        return await self._submit(
            "accept_answer",
            send,
            "Answer accepted!",
            reconcile=lambda: self._reconcile_question(data["questionId"]),
        )

    async def _reconcile_question(self, question_id):
        await self.load_questions()
        if isinstance(self.answer_view(question_id), Shown):
            await self._fetch_answers(question_id)

    async def _reject(self, level, message):
        await notify(self, level, message)
        return False, message

    async def _submit(self, action, send, success_message, on_confirmed=None, reconcile=None):
        """
        Run one write transaction: Idle -> Submitting -> Confirmed/Failed -> Idle.

        Waits for the receipt; a reverted receipt counts as a failure. The board
        is back to Idle however the transaction ends, cancellation included.
        """
        contract = self.contract
        self.submission = SubmissionState.SUBMITTING
        tx_hash = None
        confirmed = False
        try:
            tx_hash = await send(contract)
            logger.info(
                json.dumps(
                    {
                        "action": action,
                        "account": self.account,
                        "contractAddress": contract.address,
                        "tx": Web3.to_hex(tx_hash),
                    }
                )
            )
            receipt = await contract.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=QUESTIONS_CONFIRMATION_TIMEOUT
            )
            if receipt["status"] == 0:
                raise TransactionReverted(Web3.to_hex(tx_hash))
            confirmed = True
        except Exception:
            logger.exception(
                json.dumps(
                    {
                        "action": action,
                        "account": self.account,
                        "tx": Web3.to_hex(tx_hash) if tx_hash else None,
                    }
                )
            )
        finally:
            self.submission = SubmissionState.IDLE

        if not confirmed:
            await notify(self, ERROR, "Transaction failed")
            return False, "Transaction failed"
        if on_confirmed is not None:
            on_confirmed()
        await notify(self, SUCCESS, success_message)
        if reconcile is not None:
            await reconcile()
        return True, success_message
