from django.dispatch import Signal

# Sent by a WalletContext whenever its (account, contract) binding changes.
# Arguments: connection, account, contract
connection_changed = Signal()
