"""Local signing backend.

Signs with a private key held in process memory. Suitable for:
- Development/testing
- Pipelines where the key is injected from a secret store at runtime

WARNING: The private key lives in memory for the lifetime of the engine.
Use a cloud KMS or HSM backend where that is not acceptable.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, padding, rsa

from cloudsign.signing.algorithms import (
    DSA,
    ECDSA,
    LOCAL_ALGORITHMS,
    RSA_PSS,
    resolve_algorithm,
)
from cloudsign.signing.base import (
    BackendSigningError,
    SignerEngine,
    SignerType,
    SigningError,
    UnsupportedAlgorithmError,
)

logger = logging.getLogger(__name__)

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, dsa.DSAPrivateKey]

_HASHES = {
    "SHA1": hashes.SHA1,
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}


def _hash_alg(name: str) -> hashes.HashAlgorithm:
    try:
        return _HASHES[name.upper()]()
    except KeyError:
        raise UnsupportedAlgorithmError(SignerType.LOCAL, f"digest {name}")


@dataclass(frozen=True)
class PSSParameters:
    """Optional RSA-PSS parameters.

    Attributes:
        mgf_digest: Digest for MGF1; defaults to the signature digest
        salt_length: Salt length in bytes; defaults to the digest length
    """
    mgf_digest: Optional[str] = None
    salt_length: Optional[int] = None


class LocalSigner(SignerEngine):
    """Signing engine bound to one in-memory private key and algorithm."""

    signer_type = SignerType.LOCAL.value

    def __init__(
        self,
        private_key: PrivateKey,
        algorithm: str,
        algorithm_params: Optional[PSSParameters] = None,
    ):
        """Initialize local signer.

        Args:
            private_key: RSA, EC or DSA private key from `cryptography`
            algorithm: Generic algorithm identifier, e.g. "SHA256withRSA"
            algorithm_params: Optional PSS parameters (RSA/PSS only)

        Raises:
            UnsupportedAlgorithmError: Unknown algorithm, or one that does
                not fit the key type
        """
        digest_name, scheme = resolve_algorithm(LOCAL_ALGORITHMS, algorithm, SignerType.LOCAL)

        expected = {
            ECDSA: ec.EllipticCurvePrivateKey,
            DSA: dsa.DSAPrivateKey,
        }.get(scheme, rsa.RSAPrivateKey)
        if not isinstance(private_key, expected):
            raise UnsupportedAlgorithmError(
                SignerType.LOCAL,
                f"{algorithm} (key is {type(private_key).__name__})",
            )
        if algorithm_params is not None and scheme != RSA_PSS:
            raise SigningError(
                SignerType.LOCAL, f"Algorithm parameters are only accepted for RSA/PSS, not {algorithm}"
            )
        if algorithm_params is not None and not isinstance(algorithm_params, PSSParameters):
            raise SigningError(
                SignerType.LOCAL,
                f"RSA/PSS parameters must be PSSParameters, got {type(algorithm_params).__name__}",
            )

        self.algorithm = algorithm
        self.algorithm_params = algorithm_params
        self._private_key = private_key
        self._scheme = scheme
        self._hash = _hash_alg(digest_name)
        self._padding = None

        if scheme == RSA_PSS:
            params = algorithm_params or PSSParameters()
            mgf_hash = _hash_alg(params.mgf_digest) if params.mgf_digest else self._hash
            salt_length = (
                params.salt_length if params.salt_length is not None else self._hash.digest_size
            )
            self._padding = padding.PSS(mgf=padding.MGF1(mgf_hash), salt_length=salt_length)
        elif isinstance(private_key, rsa.RSAPrivateKey):
            self._padding = padding.PKCS1v15()

    def sign(self, data: bytes) -> bytes:
        """Sign data with the in-memory key."""
        try:
            if self._scheme == ECDSA:
                return self._private_key.sign(data, ec.ECDSA(self._hash))
            if self._scheme == DSA:
                return self._private_key.sign(data, self._hash)
            return self._private_key.sign(data, self._padding, self._hash)
        except (ValueError, UnsupportedAlgorithm) as e:
            logger.error(f"Local signing failed: {e}")
            raise BackendSigningError(SignerType.LOCAL, f"Signing failed: {e}") from e

    def __repr__(self) -> str:
        return f"LocalSigner(algorithm={self.algorithm})"


def load_private_key(data: bytes, password: Optional[bytes] = None) -> PrivateKey:
    """Parse a PKCS#8 private key from DER or PEM bytes.

    Args:
        data: Encoded private key (".pk8" DER files or PEM text)
        password: Optional passphrase for encrypted keys

    Returns:
        `cryptography` private key object

    Raises:
        ValueError: If the bytes are not a supported private key
    """
    if data.lstrip().startswith(b"-----BEGIN"):
        return serialization.load_pem_private_key(data, password=password)
    return serialization.load_der_private_key(data, password=password)
