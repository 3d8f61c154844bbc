"""Google Cloud KMS signing backend.

GCP keys are addressed by their immutable CryptoKeyVersion resource name:

    projects/{project}/locations/{location}/keyRings/{key_ring}/
        cryptoKeys/{crypto_key}/cryptoKeyVersions/{version}

The signing algorithm is fixed when the key version is created, so this
engine takes no algorithm argument.

Reference:
- https://cloud.google.com/kms/docs/create-validate-signatures
"""

import logging
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import kms_v1

from cloudsign.config import get_settings
from cloudsign.signing.base import (
    BackendInitializationError,
    BackendSigningError,
    SignerEngine,
    SignerType,
)

logger = logging.getLogger(__name__)


def crypto_key_version_path(
    project: str,
    location: str,
    key_ring: str,
    crypto_key: str,
    version: str = "1",
) -> str:
    """Build a CryptoKeyVersion resource name."""
    return kms_v1.KeyManagementServiceClient.crypto_key_version_path(
        project, location, key_ring, crypto_key, version
    )


def create_kms_client(endpoint: Optional[str] = None) -> kms_v1.KeyManagementServiceClient:
    """Create a Cloud KMS client, honouring an endpoint override."""
    endpoint = endpoint or get_settings().gcp_kms_endpoint
    if endpoint:
        return kms_v1.KeyManagementServiceClient(client_options={"api_endpoint": endpoint})
    return kms_v1.KeyManagementServiceClient()


class GcpSigner(SignerEngine):
    """Signs data using a Google Cloud KMS asymmetric key version."""

    signer_type = SignerType.GCP.value

    def __init__(self, key_version_name: str, endpoint: Optional[str] = None):
        """Create an engine to sign data with GCP.

        Args:
            key_version_name: Full CryptoKeyVersion resource name
            endpoint: Optional Cloud KMS API endpoint override

        Raises:
            ValueError: If the name is not a CryptoKeyVersion resource name
        """
        parts = kms_v1.KeyManagementServiceClient.parse_crypto_key_version_path(key_version_name)
        if not parts:
            raise ValueError(f"Not a CryptoKeyVersion resource name: {key_version_name}")

        self.key_alias = key_version_name
        self.endpoint = endpoint

    def sign(self, data: bytes) -> bytes:
        """Sign data with the remote key version."""
        try:
            client = create_kms_client(self.endpoint)
        except GoogleAuthError as e:
            logger.error(f"Failed to create Cloud KMS client: {e}")
            raise BackendInitializationError(
                SignerType.GCP, f"Error initializing KeyManagementServiceClient: {e}"
            ) from e

        with client:
            try:
                # No client-side retries; retry policy belongs to the caller
                response = client.asymmetric_sign(
                    request={"name": self.key_alias, "data": data},
                    retry=None,
                )
            except GoogleAPIError as e:
                logger.error(f"Cloud KMS signing failed for {self.key_alias}: {e}")
                raise BackendSigningError(
                    SignerType.GCP, f"Signing with {self.key_alias} failed: {e}"
                ) from e

        return response.signature

    def __repr__(self) -> str:
        return f"GcpSigner(key_version={self.key_alias})"
