from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from web3 import Web3


address_format = RegexValidator(regex=r"^0x[a-fA-F0-9]{40}$")


def validate_ethereum_address(value):
    """
    Validate that an Ethereum address is correctly checksummed.

    Args:
        value: The Ethereum address to validate

    Raises:
        ValidationError: If the address is not a valid checksummed Ethereum address
    """
    address_format(value)
    if not Web3.is_checksum_address(value):
        raise ValidationError("Address is not checksummed.", code="checksum")
