"""Google Cloud KMS key import tooling.

One-time administrative flow for moving a locally generated private key into
Cloud KMS:

1. Create an import-only ASYMMETRIC_SIGN crypto key (no initial version)
2. Create an import job and wait until it is ACTIVE
3. Wrap the PKCS#8 private key against the job's public key
4. Import the wrapped key as a new crypto key version

Import jobs take a while to generate their wrapping key. The wait is bounded
by IMPORT_JOB_TIMEOUT and backs off exponentially between checks.
"""

import logging
import time
from typing import Callable, Optional

from google.cloud import kms_v1

from cloudsign.config import get_settings
from cloudsign.crypto import wrap_key_for_import
from cloudsign.signing.base import CloudKeyConfig, KeyAliasNotFoundError, SignerType
from cloudsign.signing.gcp import create_kms_client

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = kms_v1.CryptoKeyVersion.CryptoKeyVersionAlgorithm.RSA_SIGN_PKCS1_2048_SHA256
DEFAULT_PROTECTION_LEVEL = kms_v1.ProtectionLevel.SOFTWARE
DEFAULT_IMPORT_METHOD = kms_v1.ImportJob.ImportMethod.RSA_OAEP_3072_SHA1_AES_256


class ImportJobError(Exception):
    """Raised when an import job ends in a state that cannot import keys."""


class ImportJobTimeoutError(ImportJobError, TimeoutError):
    """Raised when an import job does not become ACTIVE in time."""


class KeyRingClient:
    """Owns one Cloud KMS client bound to a single key ring.

    Usage:
        with KeyRingClient("my-project", "us-central1", "release") as client:
            client.import_private_key("release-key", pk8_bytes)
    """

    def __init__(
        self,
        project: str,
        location: str,
        key_ring: str,
        client: Optional[kms_v1.KeyManagementServiceClient] = None,
    ):
        self.project = project
        self.location = location
        self.key_ring = key_ring
        self.key_ring_name = kms_v1.KeyManagementServiceClient.key_ring_path(project, location, key_ring)
        self._client = client or create_kms_client()

    def __enter__(self) -> "KeyRingClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.transport.close()

    def crypto_key_name(self, crypto_key_id: str) -> str:
        return kms_v1.KeyManagementServiceClient.crypto_key_path(
            self.project, self.location, self.key_ring, crypto_key_id
        )

    def crypto_key_version_name(self, crypto_key_id: str, version: str = "1") -> str:
        return kms_v1.KeyManagementServiceClient.crypto_key_version_path(
            self.project, self.location, self.key_ring, crypto_key_id, version
        )

    def create_key_ring(self) -> kms_v1.KeyRing:
        """Create the key ring. Should only be run once per ring."""
        return self._client.create_key_ring(
            request={
                "parent": kms_v1.KeyManagementServiceClient.common_location_path(
                    self.project, self.location
                ),
                "key_ring_id": self.key_ring,
                "key_ring": {},
            }
        )

    def get_key_ring(self) -> kms_v1.KeyRing:
        return self._client.get_key_ring(request={"name": self.key_ring_name})

    def find_crypto_key(self, crypto_key_id: str) -> Optional[kms_v1.CryptoKey]:
        """Find a crypto key in this ring by id."""
        name = self.crypto_key_name(crypto_key_id)
        for crypto_key in self._client.list_crypto_keys(request={"parent": self.key_ring_name}):
            if crypto_key.name == name:
                return crypto_key
        return None

    def find_crypto_key_version(
        self, crypto_key_id: str, version: str = "1"
    ) -> Optional[kms_v1.CryptoKeyVersion]:
        """Find a specific version of a crypto key (version 1 by default)."""
        crypto_key = self.find_crypto_key(crypto_key_id)
        if crypto_key is None:
            return None

        name = self.crypto_key_version_name(crypto_key_id, version)
        for key_version in self._client.list_crypto_key_versions(request={"parent": crypto_key.name}):
            if key_version.name == name:
                return key_version
        return None

    def create_crypto_key_for_import(
        self,
        crypto_key_id: str,
        algorithm=DEFAULT_ALGORITHM,
        protection_level=DEFAULT_PROTECTION_LEVEL,
    ) -> kms_v1.CryptoKey:
        """Create an import-only signing key with no initial version."""
        crypto_key = self._client.create_crypto_key(
            request={
                "parent": self.key_ring_name,
                "crypto_key_id": crypto_key_id,
                "crypto_key": {
                    "purpose": kms_v1.CryptoKey.CryptoKeyPurpose.ASYMMETRIC_SIGN,
                    "version_template": {
                        "protection_level": protection_level,
                        "algorithm": algorithm,
                    },
                    "import_only": True,
                },
                "skip_initial_version_creation": True,
            }
        )
        logger.info(f"Created import-only key {crypto_key.name}")
        return crypto_key

    def create_import_job(
        self,
        import_job_id: str,
        import_method=DEFAULT_IMPORT_METHOD,
        protection_level=DEFAULT_PROTECTION_LEVEL,
    ) -> kms_v1.ImportJob:
        """Create an import job and wait for its wrapping key to be ready."""
        import_job = self._client.create_import_job(
            request={
                "parent": self.key_ring_name,
                "import_job_id": import_job_id,
                "import_job": {
                    "import_method": import_method,
                    "protection_level": protection_level,
                },
            }
        )
        return self.wait_for_import_job(import_job.name)

    def wait_for_import_job(
        self,
        import_job_name: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> kms_v1.ImportJob:
        """Poll an import job until it is ACTIVE.

        Raises:
            ImportJobError: If the job leaves PENDING_GENERATION for any
                state other than ACTIVE (e.g. EXPIRED)
            ImportJobTimeoutError: If the job is not ACTIVE within timeout
        """
        settings = get_settings()
        timeout = settings.import_job_timeout if timeout is None else timeout
        delay = settings.import_job_poll_interval if poll_interval is None else poll_interval
        max_delay = settings.import_job_max_poll_interval if max_poll_interval is None else max_poll_interval

        deadline = clock() + timeout
        while True:
            import_job = self._client.get_import_job(request={"name": import_job_name})
            if import_job.state == kms_v1.ImportJob.ImportJobState.ACTIVE:
                return import_job
            if import_job.state != kms_v1.ImportJob.ImportJobState.PENDING_GENERATION:
                raise ImportJobError(
                    f"Import job {import_job_name} is {import_job.state.name}, not ACTIVE"
                )

            remaining = deadline - clock()
            if remaining <= 0:
                raise ImportJobTimeoutError(
                    f"Import job {import_job_name} not ACTIVE after {timeout}s "
                    f"(state {import_job.state.name})"
                )
            logger.debug(f"Import job {import_job_name} is {import_job.state.name}, waiting {delay}s")
            sleep(min(delay, remaining))
            delay = min(delay * 2, max_delay)

    def import_crypto_key_version(
        self,
        crypto_key_name: str,
        import_job_name: str,
        wrapped_key: bytes,
        algorithm=DEFAULT_ALGORITHM,
    ) -> kms_v1.CryptoKeyVersion:
        """Import wrapped key material as a new version of a crypto key."""
        return self._client.import_crypto_key_version(
            request={
                "parent": crypto_key_name,
                "import_job": import_job_name,
                "algorithm": algorithm,
                "rsa_aes_wrapped_key": wrapped_key,
            }
        )

    def import_private_key(
        self,
        crypto_key_id: str,
        private_key_bytes: bytes,
        algorithm=DEFAULT_ALGORITHM,
        import_job_id: Optional[str] = None,
    ) -> kms_v1.CryptoKeyVersion:
        """Import a PKCS#8 private key, creating the crypto key if needed."""
        crypto_key = self.find_crypto_key(crypto_key_id)
        if crypto_key is None:
            crypto_key = self.create_crypto_key_for_import(crypto_key_id, algorithm)

        import_job = self.create_import_job(import_job_id or crypto_key_id)
        wrapped_key = wrap_key_for_import(private_key_bytes, import_job.public_key.pem)
        key_version = self.import_crypto_key_version(
            crypto_key.name, import_job.name, wrapped_key, algorithm
        )
        logger.info(f"Imported key material as {key_version.name}")
        return key_version

    def require_crypto_key_version(self, crypto_key_id: str, version: str = "1") -> str:
        """Return a key version's resource name, failing fast if it is missing.

        Raises:
            KeyAliasNotFoundError: If the key or version does not exist
        """
        key_version = self.find_crypto_key_version(crypto_key_id, version)
        if key_version is None:
            raise KeyAliasNotFoundError(
                SignerType.GCP, f"{self.crypto_key_version_name(crypto_key_id, version)} does not exist"
            )
        return key_version.name

    def key_config(self, crypto_key_id: str, version: str = "1") -> CloudKeyConfig:
        """Build a GCP key config after confirming the key version exists."""
        return CloudKeyConfig(SignerType.GCP, self.require_crypto_key_version(crypto_key_id, version))
