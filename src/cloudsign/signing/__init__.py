"""Signing engines.

Provides interchangeable signing implementations:
- LocalSigner: Private key in process memory
- AwsSigner: AWS KMS-backed signing
- GcpSigner: Google Cloud KMS-backed signing
- Pkcs11Signer: Hardware Security Module over PKCS#11

Cloud engines are imported lazily by the factory; use get_signer_engine().
"""

from cloudsign.signing.base import (
    BackendInitializationError,
    BackendSigningError,
    CloudKeyConfig,
    KeyAliasNotFoundError,
    KeyConfig,
    LocalKeyConfig,
    SignerEngine,
    SignerType,
    SigningError,
    UnsupportedAlgorithmError,
    UnsupportedBackendError,
)
from cloudsign.signing.factory import (
    get_signer_engine,
    register_backend,
    supported_backends,
    unregister_backend,
)
from cloudsign.signing.local import LocalSigner, PSSParameters, load_private_key

__all__ = [
    "BackendInitializationError",
    "BackendSigningError",
    "CloudKeyConfig",
    "KeyAliasNotFoundError",
    "KeyConfig",
    "LocalKeyConfig",
    "LocalSigner",
    "PSSParameters",
    "SignerEngine",
    "SignerType",
    "SigningError",
    "UnsupportedAlgorithmError",
    "UnsupportedBackendError",
    "get_signer_engine",
    "load_private_key",
    "register_backend",
    "supported_backends",
    "unregister_backend",
]
