from django.conf import settings

# JSON-RPC endpoint of the wallet/node
WALLET_PROVIDER_URL = getattr(settings, "WALLET_PROVIDER_URL", "http://127.0.0.1:8545")

# Expected chain ID; None accepts any network
WALLET_CHAIN_ID = getattr(settings, "WALLET_CHAIN_ID", None)

# Account to bind when the wallet exposes several
WALLET_ACCOUNT = getattr(settings, "WALLET_ACCOUNT", None)

# Seconds between account/network checks while watching
WALLET_POLL_INTERVAL = getattr(settings, "WALLET_POLL_INTERVAL", 2)

# Deployed QuestionBoard contract
QUESTION_BOARD_ADDRESS = getattr(settings, "QUESTION_BOARD_ADDRESS", None)
QUESTION_BOARD_ABI = getattr(
    settings, "QUESTION_BOARD_ABI", "contracts/QuestionBoard.json"
)
