"""Base interfaces for signing engines.

Signing flow:
1. Build a key config (local key material, or a cloud key reference)
2. Resolve it to a signing engine via the factory
3. Call sign() with the raw bytes to sign
4. Embed the returned raw signature wherever the caller needs it

Engines never expose private key material; they only return signatures.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend.

    Cloud key configs carry the string value, so backends registered by
    third parties may use tags outside this enum.
    """
    LOCAL = "LOCAL"       # Private key in process memory
    AWS = "AWS"           # AWS KMS
    GCP = "GCP"           # Google Cloud KMS
    PKCS11 = "PKCS11"     # Hardware Security Module over PKCS#11
    NONE = "NONE"         # Placeholder, never registered


def normalize_signer_type(signer_type: Union[str, SignerType]) -> str:
    """Return the registry key for a service-type tag."""
    if isinstance(signer_type, SignerType):
        return signer_type.value
    return str(signer_type).strip().upper()


@dataclass(frozen=True)
class LocalKeyConfig:
    """Key material held in process memory.

    Attributes:
        private_key: A `cryptography` private key object
    """
    private_key: Any

    def __repr__(self) -> str:
        return f"LocalKeyConfig(key_type={type(self.private_key).__name__})"


@dataclass(frozen=True)
class CloudKeyConfig:
    """Reference to a key that lives inside a remote key service.

    Attributes:
        signer_type: Service-type tag (e.g. "AWS", "GCP")
        key_alias: Name of the key inside that service. AWS takes a bare
            alias, GCP a full CryptoKeyVersion resource name.
    """
    signer_type: Union[str, SignerType]
    key_alias: str

    @property
    def backend(self) -> str:
        return normalize_signer_type(self.signer_type)


KeyConfig = Union[LocalKeyConfig, CloudKeyConfig]


class SignerEngine(ABC):
    """Signs raw bytes with one bound key.

    Implementations hold no mutable state after construction, so a single
    engine may be shared between threads.
    """

    signer_type: str = SignerType.NONE.value

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        """Sign data.

        Args:
            data: Raw bytes to sign (not a digest)

        Returns:
            Raw signature bytes as produced by the backend
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type})"


class SigningError(Exception):
    """Base exception for signing engine failures."""

    def __init__(self, signer_type: Union[str, SignerType], message: str):
        self.signer_type = normalize_signer_type(signer_type)
        self.message = message
        super().__init__(f"[{self.signer_type}] {message}")


class UnsupportedBackendError(SigningError):
    """Raised when no engine is registered for a service-type tag."""


class UnsupportedAlgorithmError(SigningError):
    """Raised when a backend cannot sign with the requested algorithm."""

    def __init__(self, signer_type: Union[str, SignerType], algorithm: str):
        self.algorithm = algorithm
        super().__init__(signer_type, f"Signature algorithm {algorithm} not supported")


class BackendInitializationError(SigningError):
    """Raised when a client or session to the backend cannot be set up."""


class BackendSigningError(SigningError):
    """Raised when the backend rejects or fails the sign call."""


class KeyAliasNotFoundError(SigningError):
    """Raised when a cloud key alias does not exist."""
