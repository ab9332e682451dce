from django.conf import settings

# Unit bounties are shown and entered in
QUESTIONS_BOUNTY_UNIT = getattr(settings, "QUESTIONS_BOUNTY_UNIT", "ether")

# Seconds to wait for a transaction receipt; None waits until the provider answers
QUESTIONS_CONFIRMATION_TIMEOUT = getattr(settings, "QUESTIONS_CONFIRMATION_TIMEOUT", None)

# Treat the question at index 0 as a contract placeholder and hide it
QUESTIONS_FIRST_IS_SENTINEL = getattr(settings, "QUESTIONS_FIRST_IS_SENTINEL", False)
