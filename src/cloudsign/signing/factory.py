"""Signer engine factory.

Resolves a key config to a concrete signing engine.

Local key configs are turned into a LocalSigner directly. Cloud key configs
are looked up in a registry keyed by service-type tag; adding a backend means
registering one constructor, not subclassing anything.

Dispatch never touches the network: engines connect only when sign() runs.
"""

import importlib
import logging
from typing import Any, Callable, Optional, Union

from cloudsign.signing.base import (
    BackendInitializationError,
    CloudKeyConfig,
    KeyConfig,
    LocalKeyConfig,
    SignerEngine,
    SignerType,
    UnsupportedBackendError,
    normalize_signer_type,
)
from cloudsign.signing.local import LocalSigner

logger = logging.getLogger(__name__)

# (key_alias, algorithm, algorithm_params) -> engine
EngineConstructor = Callable[[str, Optional[str], Optional[Any]], SignerEngine]

_registry: dict[str, EngineConstructor] = {}


def register_backend(signer_type: Union[str, SignerType], constructor: EngineConstructor) -> None:
    """Register an engine constructor for a service-type tag.

    Args:
        signer_type: Service-type tag (case-insensitive)
        constructor: Callable taking (key_alias, algorithm, algorithm_params)
    """
    tag = normalize_signer_type(signer_type)
    if tag in (SignerType.LOCAL.value, SignerType.NONE.value):
        raise ValueError(f"{tag} is reserved and cannot be registered")
    if tag in _registry:
        logger.warning(f"Replacing signer backend {tag}")
    _registry[tag] = constructor


def unregister_backend(signer_type: Union[str, SignerType]) -> None:
    """Remove a backend from the registry (no-op if absent)."""
    _registry.pop(normalize_signer_type(signer_type), None)


def supported_backends() -> list[str]:
    """List registered service-type tags."""
    return sorted(_registry)


def _load(signer_type: SignerType, module: str, name: str):
    """Import a backend module on first use.

    Backend SDKs are imported lazily so a pipeline that only uses one cloud
    does not need the others installed.
    """
    try:
        return getattr(importlib.import_module(module), name)
    except ImportError as e:
        raise BackendInitializationError(
            signer_type, f"Backend module {module} unavailable: {e}"
        ) from e


def _aws(key_alias: str, algorithm: Optional[str], algorithm_params: Optional[Any]) -> SignerEngine:
    return _load(SignerType.AWS, "cloudsign.signing.aws", "AwsSigner")(key_alias, algorithm)


def _gcp(key_alias: str, algorithm: Optional[str], algorithm_params: Optional[Any]) -> SignerEngine:
    # GCP key versions have a fixed algorithm
    return _load(SignerType.GCP, "cloudsign.signing.gcp", "GcpSigner")(key_alias)


def _pkcs11(key_alias: str, algorithm: Optional[str], algorithm_params: Optional[Any]) -> SignerEngine:
    return _load(SignerType.PKCS11, "cloudsign.signing.hsm", "Pkcs11Signer")(key_alias, algorithm)


register_backend(SignerType.AWS, _aws)
register_backend(SignerType.GCP, _gcp)
register_backend(SignerType.PKCS11, _pkcs11)


def get_signer_engine(
    key_config: KeyConfig,
    algorithm: Optional[str] = None,
    algorithm_params: Optional[Any] = None,
) -> SignerEngine:
    """Get a signing engine for a key config.

    Args:
        key_config: LocalKeyConfig or CloudKeyConfig
        algorithm: Generic signature algorithm; required for local keys.
            Cloud keys have their algorithm fixed at creation, so the
            cloud constructors that do not need it ignore it.
        algorithm_params: Optional algorithm parameters (local keys only)

    Returns:
        SignerEngine instance

    Raises:
        UnsupportedBackendError: If the cloud service type is not registered
        UnsupportedAlgorithmError: If the backend cannot use the algorithm
    """
    if isinstance(key_config, LocalKeyConfig):
        return LocalSigner(key_config.private_key, algorithm, algorithm_params)

    if not isinstance(key_config, CloudKeyConfig):
        raise TypeError(f"Unknown key config: {type(key_config).__name__}")

    tag = key_config.backend
    constructor = _registry.get(tag)
    if constructor is None:
        raise UnsupportedBackendError(tag, "Unsupported KMS")

    logger.info(f"Initializing {tag} signer for {key_config.key_alias}")
    # Algorithm parameters only apply to local keys
    return constructor(key_config.key_alias, algorithm, None)
