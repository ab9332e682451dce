"""
In-memory records for the questions app.

Questions and answers live on the QuestionBoard contract; the client only
re-reads them, so the records are frozen. Nothing here is persisted. The answer
visibility of a question is a tagged union: Hidden, Loading or Shown.
"""

import enum
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class Question:
    """
    A question read from the contract.

    The bounty is held in the display unit, not in wei.
    """

    id: int
    content: str
    author: str
    bounty: Decimal
    answered: bool


@dataclass(frozen=True)
class Answer:
    """An answer to the question with id questionId."""

    id: int
    content: str
    author: str
    accepted: bool
    questionId: int


@dataclass(frozen=True)
class Hidden:
    pass


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Shown:
    answers: tuple = ()


HIDDEN = Hidden()
LOADING = Loading()


@dataclass(frozen=True)
class LoadingState:
    """
    Snapshot of the three independent loading scopes.

    answers only holds question ids whose answers are being fetched.
    """

    questions: bool = False
    answers: dict = field(default_factory=dict)
    transaction: bool = False


@dataclass
class Draft:
    """What the user has typed into the question form."""

    content: str = ""
    bounty: str = ""


class SubmissionState(enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
