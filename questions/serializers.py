from collections.abc import Mapping
from decimal import Decimal

from rest_framework import serializers
from web3 import Web3

from wallet.validators import validate_ethereum_address
from questions.models import Question, Answer
from questions.settings import QUESTIONS_BOUNTY_UNIT


def struct_to_dict(raw, fields):
    """
    Normalize a value returned by the contract into a dict.

    Structs decoded with decode_tuples come back as named tuples, public
    mapping getters as plain tuples in declaration order.
    """
    if hasattr(raw, "_asdict"):
        return dict(raw._asdict())
    if isinstance(raw, Mapping):
        return dict(raw)
    return dict(zip(fields, raw))


class BountyField(serializers.Field):
    """A wei amount on the ledger, held in the display unit locally."""

    default_error_messages = {
        "invalid": "A valid wei amount is required.",
        "negative": "Bounty cannot be negative.",
    }

    def to_internal_value(self, data):
        if isinstance(data, bool):
            self.fail("invalid")
        try:
            wei = int(data)
        except (TypeError, ValueError):
            self.fail("invalid")
        if wei < 0:
            self.fail("negative")
        return Decimal(Web3.from_wei(wei, QUESTIONS_BOUNTY_UNIT))

    def to_representation(self, value):
        return format(value, "f")


class LedgerRecordSerializer(serializers.Serializer):
    """Builds a frozen record from a raw contract struct."""

    record_class = None

    @classmethod
    def from_ledger(cls, raw):
        serializer = cls(data=struct_to_dict(raw, list(cls().fields)))
        serializer.is_valid(raise_exception=True)
        return serializer.save()

    def create(self, validated_data):
        return self.record_class(**validated_data)


class QuestionSerializer(LedgerRecordSerializer):
    record_class = Question

    id = serializers.IntegerField(min_value=0)
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)
    author = serializers.CharField(validators=[validate_ethereum_address])
    bounty = BountyField()
    answered = serializers.BooleanField()


class AnswerSerializer(LedgerRecordSerializer):
    record_class = Answer

    id = serializers.IntegerField(min_value=0)
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)
    author = serializers.CharField(validators=[validate_ethereum_address])
    accepted = serializers.BooleanField()
    questionId = serializers.IntegerField(min_value=0)


class PostQuestionSerializer(serializers.Serializer):
    content = serializers.CharField()
    bounty = serializers.DecimalField(
        max_digits=None, decimal_places=18, min_value=Decimal("0")
    )

    def validate(self, attrs):
        # amount attached to the transaction
        attrs["value"] = Web3.to_wei(attrs["bounty"], QUESTIONS_BOUNTY_UNIT)
        return attrs


class PostAnswerSerializer(serializers.Serializer):
    questionId = serializers.IntegerField(min_value=0)
    content = serializers.CharField()


class AcceptAnswerSerializer(serializers.Serializer):
    questionId = serializers.IntegerField(min_value=0)
    answerId = serializers.IntegerField(min_value=0)


def first_error(errors):
    """Flatten serializer.errors into a single readable message."""
    field, details = next(iter(errors.items()))
    message = details[0] if isinstance(details, list) else details
    if field == "non_field_errors":
        return str(message)
    return f"{field}: {message}"
