"""Cryptographic primitives and abuse protection for qwen-auth.

* :mod:`~qwen_auth.security.crypto` -- PKCE pairs, random tokens, log-safe
  fingerprints, and the machine key.
* :mod:`~qwen_auth.security.encryption` -- AES-256-GCM envelopes with scrypt
  key stretching.
* :mod:`~qwen_auth.security.rate_limiter` -- per-identifier sliding-window
  limiter with lockout.
"""

from qwen_auth.security.crypto import (
    PKCEPair,
    generate_code_challenge,
    generate_code_verifier,
    generate_machine_key,
    generate_pkce_pair,
    generate_secure_token,
    hash_sensitive_data,
)
from qwen_auth.security.encryption import (
    decrypt,
    decrypt_object,
    encrypt,
    encrypt_object,
    is_encrypted,
)
from qwen_auth.security.rate_limiter import RateLimiter, format_duration

__all__ = [
    "PKCEPair",
    "RateLimiter",
    "decrypt",
    "decrypt_object",
    "encrypt",
    "encrypt_object",
    "format_duration",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_machine_key",
    "generate_pkce_pair",
    "generate_secure_token",
    "hash_sensitive_data",
    "is_encrypted",
]
