"""Hardware Security Module (HSM) signing backend.

Provides an engine for PKCS#11 compliant HSMs such as:
- AWS CloudHSM
- Thales Luna HSM
- YubiHSM
- SoftHSM (testing)

Setup:
1. Install the PKCS#11 library for your HSM
2. Set PKCS11_LIB to the library path
3. Set PKCS11_PIN for the HSM user PIN
4. Set PKCS11_TOKEN_LABEL (optional, defaults to the first token present)

The key config alias is the LABEL of the private key object on the token.

Reference:
- https://python-pkcs11.readthedocs.io/en/latest/applied.html
"""

import logging
import threading
from typing import Dict, Optional, Tuple

import pkcs11
from pkcs11 import MGF, Mechanism, ObjectClass
from pkcs11.exceptions import PKCS11Error
from pkcs11.util.ec import encode_ecdsa_signature

from cloudsign.config import get_settings
from cloudsign.signing.algorithms import PKCS11_MECHANISMS, resolve_algorithm
from cloudsign.signing.base import (
    BackendInitializationError,
    BackendSigningError,
    SignerEngine,
    SignerType,
)

logger = logging.getLogger(__name__)

# PSS parameters per mechanism: (hash, MGF, salt length)
_PSS_PARAMS = {
    "SHA256_RSA_PKCS_PSS": (Mechanism.SHA256, MGF.SHA256, 32),
    "SHA512_RSA_PKCS_PSS": (Mechanism.SHA512, MGF.SHA512, 64),
}

# Login state is shared by every session on a token: C_Logout on one session
# logs out all of them. Sessions are therefore used one at a time per token.
_token_locks: Dict[Tuple[Optional[str], Optional[str]], threading.Lock] = {}
_token_locks_guard = threading.Lock()


def _token_lock(lib_path: Optional[str], token_label: Optional[str]) -> threading.Lock:
    with _token_locks_guard:
        return _token_locks.setdefault((lib_path, token_label), threading.Lock())


class Pkcs11Signer(SignerEngine):
    """PKCS#11 HSM signing engine.

    A session is opened for each sign() and closed before it returns, so the
    engine itself holds no session state. Concurrent sign() calls against the
    same token wait for each other.
    """

    signer_type = SignerType.PKCS11.value

    def __init__(
        self,
        key_label: str,
        algorithm: str,
        lib_path: Optional[str] = None,
        token_label: Optional[str] = None,
        user_pin: Optional[str] = None,
    ):
        """Initialize HSM signer.

        Args:
            key_label: Label of the private key object on the token
            algorithm: Generic algorithm identifier, e.g. "SHA256withECDSA"
            lib_path: Path to PKCS#11 library (defaults to PKCS11_LIB)
            token_label: Token label (defaults to PKCS11_TOKEN_LABEL)
            user_pin: HSM user PIN (defaults to PKCS11_PIN)
        """
        mechanism_name = resolve_algorithm(PKCS11_MECHANISMS, algorithm, SignerType.PKCS11)
        settings = get_settings()

        self.key_alias = key_label
        self.mechanism = getattr(Mechanism, mechanism_name)
        self.mechanism_param = _PSS_PARAMS.get(mechanism_name)
        self._ecdsa = mechanism_name.startswith("ECDSA")
        self.lib_path = lib_path or settings.pkcs11_lib
        self.token_label = token_label or settings.pkcs11_token_label
        self._pin = user_pin or settings.pkcs11_pin

    def _get_token(self):
        """Load the PKCS#11 library and find the token."""
        if not self.lib_path:
            raise BackendInitializationError(SignerType.PKCS11, "PKCS11_LIB not set")
        if not self._pin:
            raise BackendInitializationError(SignerType.PKCS11, "PKCS11_PIN not set")

        try:
            lib = pkcs11.lib(self.lib_path)
            if self.token_label:
                return lib.get_token(token_label=self.token_label)
            slots = lib.get_slots(token_present=True)
            if not slots:
                raise BackendInitializationError(SignerType.PKCS11, "No token present")
            return slots[0].get_token()
        except (PKCS11Error, OSError, RuntimeError) as e:
            logger.error(f"Failed to open PKCS#11 token: {e}")
            raise BackendInitializationError(
                SignerType.PKCS11, f"HSM initialization failed: {e}"
            ) from e

    def sign(self, data: bytes) -> bytes:
        """Sign data using the HSM."""
        with _token_lock(self.lib_path, self.token_label):
            signature = self._sign_in_session(data)

        # PKCS#11 returns raw r || s; other backends return DER
        if self._ecdsa:
            return encode_ecdsa_signature(signature)
        return signature

    def _sign_in_session(self, data: bytes) -> bytes:
        token = self._get_token()

        try:
            session = token.open(user_pin=self._pin)
        except PKCS11Error as e:
            logger.error(f"Failed to open HSM session: {e}")
            raise BackendInitializationError(
                SignerType.PKCS11, f"HSM session failed: {e}"
            ) from e

        with session:
            try:
                key = session.get_key(object_class=ObjectClass.PRIVATE_KEY, label=self.key_alias)
                signature = key.sign(
                    data,
                    mechanism=self.mechanism,
                    mechanism_param=self.mechanism_param,
                )
            except PKCS11Error as e:
                logger.error(f"HSM signing failed for {self.key_alias}: {e!r}")
                raise BackendSigningError(
                    SignerType.PKCS11, f"Signing with {self.key_alias} failed: {e!r}"
                ) from e

        return signature

    def __repr__(self) -> str:
        return f"Pkcs11Signer(key_label={self.key_alias}, mechanism={self.mechanism.name})"
