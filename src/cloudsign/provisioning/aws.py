"""AWS KMS key import tooling.

One-time administrative flow for moving a locally generated private key into
AWS KMS:

1. Create a SIGN_VERIFY key with Origin=EXTERNAL and give it an alias
2. Fetch an RSA_4096 wrapping key and import token
3. Wrap the PKCS#8 private key with wrap_key_for_import()
4. Upload the wrapped key material (non-expiring)

Signing never goes through this module; it only prepares keys that
AwsSigner later addresses by alias.
"""

import logging
from typing import Optional

from botocore.exceptions import ClientError

from cloudsign.crypto import wrap_key_for_import
from cloudsign.signing.aws import ALIAS_PREFIX, alias_key_id, create_kms_client
from cloudsign.signing.base import CloudKeyConfig, KeyAliasNotFoundError, SignerType

logger = logging.getLogger(__name__)

DEFAULT_KEY_SPEC = "RSA_2048"
DEFAULT_WRAPPING_KEY_SPEC = "RSA_4096"
DEFAULT_WRAPPING_ALGORITHM = "RSA_AES_KEY_WRAP_SHA_1"


class KeyAliasClient:
    """Owns one KMS client for a batch of administrative calls.

    Usage:
        with KeyAliasClient() as client:
            client.import_private_key("release-key", pk8_bytes)
    """

    def __init__(self, client=None, region: Optional[str] = None):
        self._client = client or create_kms_client(region)

    def __enter__(self) -> "KeyAliasClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def list_key_aliases(self) -> list[dict]:
        """List all key aliases in the account, following pagination."""
        aliases: list[dict] = []
        for page in self._client.get_paginator("list_aliases").paginate():
            aliases.extend(page.get("Aliases", []))
        return aliases

    def find_key_alias(self, key_alias: str) -> Optional[dict]:
        """Find an alias list entry by bare alias name."""
        alias_name = alias_key_id(key_alias)
        for entry in self.list_key_aliases():
            if entry.get("AliasName") == alias_name:
                return entry
        return None

    def get_key_for_alias(self, key_alias: str) -> Optional[dict]:
        """Describe the key behind an alias.

        Returns:
            KeyMetadata dict, or None if the alias does not exist
        """
        try:
            response = self._client.describe_key(KeyId=alias_key_id(key_alias))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NotFoundException":
                logger.info(f"Requested key alias {key_alias} was not found")
                return None
            raise
        return response["KeyMetadata"]

    def create_key_for_import(self, key_alias: str, key_spec: str = DEFAULT_KEY_SPEC) -> dict:
        """Create an empty EXTERNAL-origin signing key and alias it."""
        key_metadata = self._client.create_key(
            KeyUsage="SIGN_VERIFY",
            KeySpec=key_spec,
            Origin="EXTERNAL",
        )["KeyMetadata"]

        self._client.create_alias(
            AliasName=alias_key_id(key_alias),
            TargetKeyId=key_metadata["KeyId"],
        )
        logger.info(f"Created {key_spec} key {key_metadata['KeyId']} as {ALIAS_PREFIX}{key_alias}")
        return key_metadata

    def get_parameters_for_import(
        self,
        key_id: str,
        wrapping_key_spec: str = DEFAULT_WRAPPING_KEY_SPEC,
        wrapping_algorithm: str = DEFAULT_WRAPPING_ALGORITHM,
    ) -> dict:
        """Fetch the wrapping public key (DER) and import token for a key."""
        return self._client.get_parameters_for_import(
            KeyId=key_id,
            WrappingAlgorithm=wrapping_algorithm,
            WrappingKeySpec=wrapping_key_spec,
        )

    def import_key_material(self, key_id: str, import_token: bytes, wrapped_key: bytes) -> dict:
        """Upload wrapped key material that never expires."""
        return self._client.import_key_material(
            KeyId=key_id,
            ImportToken=import_token,
            EncryptedKeyMaterial=wrapped_key,
            ExpirationModel="KEY_MATERIAL_DOES_NOT_EXPIRE",
        )

    def import_private_key(
        self,
        key_alias: str,
        private_key_bytes: bytes,
        key_spec: str = DEFAULT_KEY_SPEC,
    ) -> dict:
        """Import a PKCS#8 private key under an alias, creating the key if needed.

        Returns:
            KeyMetadata of the key the material was imported into
        """
        key_metadata = self.get_key_for_alias(key_alias)
        if key_metadata is None:
            key_metadata = self.create_key_for_import(key_alias, key_spec)

        key_id = key_metadata["KeyId"]
        params = self.get_parameters_for_import(key_id)
        wrapped_key = wrap_key_for_import(private_key_bytes, params["PublicKey"])
        self.import_key_material(key_id, params["ImportToken"], wrapped_key)

        logger.info(f"Imported key material into {key_id} ({ALIAS_PREFIX}{key_alias})")
        return key_metadata


def require_key_alias(key_alias: str, client: Optional[KeyAliasClient] = None) -> dict:
    """Fail fast if an alias does not exist.

    Raises:
        KeyAliasNotFoundError: If no such alias is present in the account
    """
    if client is None:
        with KeyAliasClient() as owned:
            return require_key_alias(key_alias, owned)

    entry = client.find_key_alias(key_alias)
    if entry is None:
        raise KeyAliasNotFoundError(SignerType.AWS, f"key alias {key_alias} does not exist")
    return entry


def aws_key_config(key_alias: str, client: Optional[KeyAliasClient] = None) -> CloudKeyConfig:
    """Build an AWS key config after confirming the alias exists."""
    require_key_alias(key_alias, client)
    return CloudKeyConfig(SignerType.AWS, key_alias)
