import secrets

from eth_account import Account


class LocalSigner:
    """Development stand-in for Odyn backed by an eth-account key."""

    def __init__(self, private_key=None):
        self.account = Account.from_key(private_key) if private_key else Account.create()

    def eth_address(self):
        return self.account.address

    def sign_transaction(self, tx):
        signed = self.account.sign_transaction(tx)
        return signed.raw_transaction

    @staticmethod
    def get_random_bytes(count=32):
        return secrets.token_bytes(count)
