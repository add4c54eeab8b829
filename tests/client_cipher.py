"""What a browser client does before uploading: AES-GCM seal the scene locally.

The server never runs this; tests use it to produce realistic ciphertext.
"""
import os, base64
from typing import Optional, Tuple
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_LEN = 12
KEY_LEN = 32  # 256-bit

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode()

def new_client_key() -> Tuple[bytes, str]:
    """Return (key, key_reference). The reference is what goes in x-encryption-key."""
    key = AESGCM.generate_key(bit_length=KEY_LEN * 8)
    return key, b64e(key[:8])

def seal(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
    nonce = os.urandom(NONCE_LEN)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)

def open_sealed(key: bytes, blob: bytes, aad: Optional[bytes] = None) -> bytes:
    return AESGCM(key).decrypt(blob[:NONCE_LEN], blob[NONCE_LEN:], aad)
