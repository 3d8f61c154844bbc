"""Pytest configuration and fixtures."""

import os

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa

# Keep tests away from any real cloud configuration
os.environ["ENVIRONMENT"] = "test"
os.environ["AWS_REGION"] = "us-east-1"
os.environ.pop("AWS_KMS_ENDPOINT_URL", None)
os.environ.pop("GCP_KMS_ENDPOINT", None)

from cloudsign.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached; reload them for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """RSA-2048 signing key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    """P-256 signing key."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def dsa_key() -> dsa.DSAPrivateKey:
    """DSA-2048 signing key."""
    return dsa.generate_private_key(key_size=2048)


@pytest.fixture(scope="session")
def wrapping_key() -> rsa.RSAPrivateKey:
    """RSA-4096 key standing in for a KMS import wrapping key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=4096)


@pytest.fixture(scope="session")
def wrapping_public_der(wrapping_key) -> bytes:
    """Wrapping public key as DER SubjectPublicKeyInfo (AWS format)."""
    return wrapping_key.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def wrapping_public_pem(wrapping_key) -> str:
    """Wrapping public key as PEM text (GCP format)."""
    return wrapping_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture(scope="session")
def rsa_key_pk8(rsa_key) -> bytes:
    """RSA-2048 key as PKCS#8 DER, the format uploaded to a KMS."""
    return rsa_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
