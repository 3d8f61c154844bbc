"""Hybrid key wrapping for cloud KMS key import.

RSA-OAEP alone cannot carry most private keys: with a 4096-bit wrapping key
and SHA-1 OAEP the plaintext limit is 470 bytes, while a PKCS#8 encoded
RSA-2048 key is about 1.2 KB. Keys are therefore wrapped in two layers:

1. A fresh 256-bit AES key wraps the private key with AES-KWP (RFC 5649)
2. The wrapping public key from the KMS wraps that AES key with RSA-OAEP
   (SHA-1, MGF1-SHA-1, empty label)

The upload blob is the two ciphertexts concatenated with no framing:

    RSA-OAEP(aes_key) || AES-KWP(private_key)

This is the RSA_AES_KEY_WRAP_SHA_1 format of AWS KMS and the
RSA_OAEP_*_SHA1_AES_256 import methods of Cloud KMS.
"""

import logging
import math
import os
from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.keywrap import (
    InvalidUnwrap,
    aes_key_unwrap_with_padding,
    aes_key_wrap_with_padding,
)

logger = logging.getLogger(__name__)

EPHEMERAL_KEY_BYTES = 32
KWP_HEADER_BYTES = 8

WrappingKey = Union[bytes, bytearray, memoryview, str, rsa.RSAPublicKey]


class KeyWrapError(Exception):
    """Raised when a key cannot be wrapped or unwrapped."""


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA1()),
        algorithm=hashes.SHA1(),
        label=None,
    )


def load_wrapping_public_key(data: WrappingKey) -> rsa.RSAPublicKey:
    """Load the RSA public key supplied by a KMS import job.

    Args:
        data: DER SubjectPublicKeyInfo bytes (AWS GetParametersForImport),
            PEM text (GCP ImportJob.public_key.pem), or an RSAPublicKey

    Returns:
        RSA public key

    Raises:
        KeyWrapError: If the key is malformed or not RSA
    """
    if isinstance(data, rsa.RSAPublicKey):
        return data
    if isinstance(data, str):
        data = data.encode()
    elif isinstance(data, (bytearray, memoryview)):
        data = bytes(data)
    if not isinstance(data, bytes):
        raise KeyWrapError(
            f"Wrapping key must be DER or PEM bytes or an RSA public key, got {type(data).__name__}"
        )

    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            key = serialization.load_pem_public_key(data)
        else:
            key = serialization.load_der_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyWrapError(f"Malformed wrapping public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyWrapError(f"Wrapping key must be RSA, got {type(key).__name__}")
    return key


def wrapped_key_length(private_key_length: int, modulus_bytes: int) -> int:
    """Length of the package produced by wrap_key_for_import()."""
    return modulus_bytes + KWP_HEADER_BYTES + 8 * math.ceil(private_key_length / 8)


def wrap_key_for_import(private_key_bytes: bytes, wrapping_public_key: WrappingKey) -> bytes:
    """Wrap a private key for upload to a cloud KMS import API.

    Every call uses a fresh AES key and fresh OAEP randomness, so wrapping
    the same key twice gives two different, equally valid packages.

    Args:
        private_key_bytes: Encoded private key, normally PKCS#8 DER
        wrapping_public_key: Public key supplied by the KMS for this import

    Returns:
        RSA-OAEP wrapped AES key followed by the AES-KWP wrapped private key

    Raises:
        KeyWrapError: On a malformed wrapping key or primitive failure
    """
    if not private_key_bytes:
        raise KeyWrapError("Private key bytes must be non-empty")

    public_key = load_wrapping_public_key(wrapping_public_key)

    kwp_key = os.urandom(EPHEMERAL_KEY_BYTES)
    try:
        wrapped_target_key = aes_key_wrap_with_padding(kwp_key, private_key_bytes)
        wrapped_kwp_key = public_key.encrypt(kwp_key, _oaep())
    except ValueError as e:
        raise KeyWrapError(f"Key wrap failed: {e}") from e

    logger.debug(
        f"Wrapped {len(private_key_bytes)} byte key with RSA-{public_key.key_size} "
        f"({len(wrapped_kwp_key) + len(wrapped_target_key)} bytes)"
    )
    return wrapped_kwp_key + wrapped_target_key


def unwrap_imported_key(package: bytes, wrapping_private_key: rsa.RSAPrivateKey) -> bytes:
    """Recover the private key from a package built by wrap_key_for_import().

    Only the holder of the wrapping private key (the KMS) can do this; it is
    provided for verifying packages against test wrapping keys.

    Raises:
        KeyWrapError: If either layer fails to unwrap
    """
    modulus_bytes = (wrapping_private_key.key_size + 7) // 8
    if len(package) <= modulus_bytes:
        raise KeyWrapError(f"Package too short: {len(package)} bytes")

    try:
        kwp_key = wrapping_private_key.decrypt(package[:modulus_bytes], _oaep())
        return aes_key_unwrap_with_padding(kwp_key, package[modulus_bytes:])
    except (ValueError, InvalidUnwrap) as e:
        raise KeyWrapError(f"Key unwrap failed: {e}") from e
