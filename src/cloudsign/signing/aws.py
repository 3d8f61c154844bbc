"""AWS KMS signing backend.

Uses AWS Key Management Service for key storage and signing.
KMS keys never leave AWS - signing happens in the cloud.

Setup:
1. Create (or import) an asymmetric SIGN_VERIFY key in AWS KMS
2. Give it an alias; the engine addresses the key as "alias/<alias>"
3. Configure AWS credentials (IAM role, access keys, etc.)

Reference:
- https://docs.aws.amazon.com/kms/latest/APIReference/API_Sign.html
"""

import logging
from contextlib import closing
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudsign.config import get_settings
from cloudsign.signing.algorithms import AWS_SIGNING_ALGORITHMS, resolve_algorithm
from cloudsign.signing.base import (
    BackendInitializationError,
    BackendSigningError,
    SignerEngine,
    SignerType,
)

logger = logging.getLogger(__name__)

ALIAS_PREFIX = "alias/"

# Exactly one Sign RPC per sign() call
NO_RETRY = Config(retries={"total_max_attempts": 1})


def alias_key_id(key_alias: str) -> str:
    """Return the KMS KeyId for an alias, adding the "alias/" prefix once."""
    if key_alias.startswith(ALIAS_PREFIX):
        return key_alias
    return ALIAS_PREFIX + key_alias


def create_kms_client(
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    config: Optional[Config] = None,
):
    """Create a boto3 KMS client from explicit values or settings."""
    settings = get_settings()
    return boto3.client(
        "kms",
        region_name=region or settings.aws_region,
        endpoint_url=endpoint_url or settings.aws_kms_endpoint_url,
        config=config,
    )


class AwsSigner(SignerEngine):
    """AWS KMS signing engine.

    The signing algorithm is chosen per call in AWS, so it is resolved once
    here from the generic identifier. Each sign() opens its own client and
    closes it before returning.
    """

    signer_type = SignerType.AWS.value

    def __init__(
        self,
        key_alias: str,
        algorithm: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """Initialize KMS signer.

        Args:
            key_alias: Key alias, with or without the "alias/" prefix
            algorithm: Generic algorithm identifier, e.g. "SHA256withRSA/PSS"
            region: AWS region (defaults to settings)
            endpoint_url: Optional KMS endpoint override

        Raises:
            UnsupportedAlgorithmError: If AWS KMS has no matching algorithm
        """
        self.signing_algorithm = resolve_algorithm(AWS_SIGNING_ALGORITHMS, algorithm, SignerType.AWS)
        self.key_alias = key_alias
        self.key_id = alias_key_id(key_alias)
        self.region = region
        self.endpoint_url = endpoint_url

    def sign(self, data: bytes) -> bytes:
        """Sign data using AWS KMS."""
        try:
            client = create_kms_client(self.region, self.endpoint_url, config=NO_RETRY)
        except (BotoCoreError, ValueError) as e:
            logger.error(f"Failed to create KMS client: {e}")
            raise BackendInitializationError(
                SignerType.AWS, f"Error initializing KMS client: {e}"
            ) from e

        with closing(client):
            try:
                response = client.sign(
                    KeyId=self.key_id,
                    Message=data,
                    MessageType="RAW",
                    SigningAlgorithm=self.signing_algorithm,
                )
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                logger.error(f"KMS signing error for {self.key_id}: {error_code}")
                raise BackendSigningError(
                    SignerType.AWS, f"Signing with {self.key_id} failed: {error_code}"
                ) from e
            except BotoCoreError as e:
                logger.error(f"KMS signing failed for {self.key_id}: {e}")
                raise BackendSigningError(
                    SignerType.AWS, f"Signing with {self.key_id} failed: {e}"
                ) from e

        return response["Signature"]

    def __repr__(self) -> str:
        return f"AwsSigner(key_id={self.key_id}, algorithm={self.signing_algorithm})"
