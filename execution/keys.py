"""Signing keypair loading."""

import json
from pathlib import Path

from solders.keypair import Keypair


def load_keypair(secret: str) -> Keypair:
    """
    Load a keypair from a base58 secret, a JSON byte array, or a file path
    holding a JSON byte array (solana-keygen format).
    """
    secret = secret.strip()
    if not secret:
        raise ValueError("Empty private key")

    if not secret.startswith("["):
        path = Path(secret).expanduser()
        if path.suffix == ".json" and path.is_file():
            secret = path.read_text().strip()

    if secret.startswith("["):
        key_bytes = json.loads(secret)
        if not isinstance(key_bytes, list) or len(key_bytes) != 64:
            raise ValueError("Keypair byte array must hold 64 integers")
        return Keypair.from_bytes(bytes(key_bytes))

    return Keypair.from_base58_string(secret)
