import glob

from eth_account import Account
from eth_account.signers.local import LocalAccount


def import_owner_account(
    keystore_file_password, keystore_file_path="keystore/*"
) -> LocalAccount:
    if keystore_file_path != "keystore/*":
        keystore = keystore_file_path
    else:
        keystore = glob.glob(keystore_file_path)[0]

    with open(keystore) as keyfile:
        encrypted_key = keyfile.read()
        private_key = Account.decrypt(encrypted_key, keystore_file_password)
        return Account.from_key(private_key)


def owner_account_from_private_key(private_key: str) -> LocalAccount:
    return Account.from_key(bytes.fromhex(private_key.removeprefix("0x")))
