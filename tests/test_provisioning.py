"""Tests for the KMS key import tooling."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from google.cloud import kms_v1

from cloudsign.crypto import unwrap_imported_key
from cloudsign.provisioning.aws import KeyAliasClient, aws_key_config, require_key_alias
from cloudsign.provisioning.gcp import ImportJobError, ImportJobTimeoutError, KeyRingClient
from cloudsign.signing.base import CloudKeyConfig, KeyAliasNotFoundError, SignerType

KEY_RING = "projects/p/locations/global/keyRings/r"
ImportJobState = kms_v1.ImportJob.ImportJobState


def _not_found(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "NotFoundException", "Message": "missing"}}, operation)


@pytest.fixture
def kms_client():
    """Mock boto3 KMS client with two pages of aliases."""
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [
        {"Aliases": [{"AliasName": "alias/aws/s3"}, {"AliasName": "alias/first"}]},
        {"Aliases": [{"AliasName": "alias/second", "TargetKeyId": "key-2"}]},
    ]
    return client


class TestKeyAliasClient:
    """Tests for the AWS import client."""

    def test_list_aliases_pages(self, kms_client):
        """Test aliases from every page are returned."""
        aliases = KeyAliasClient(client=kms_client).list_key_aliases()

        assert [a["AliasName"] for a in aliases] == ["alias/aws/s3", "alias/first", "alias/second"]
        kms_client.get_paginator.assert_called_once_with("list_aliases")

    def test_find_key_alias(self, kms_client):
        """Test finding an alias on a later page."""
        client = KeyAliasClient(client=kms_client)

        assert client.find_key_alias("second")["TargetKeyId"] == "key-2"
        assert client.find_key_alias("alias/second")["TargetKeyId"] == "key-2"
        assert client.find_key_alias("third") is None

    def test_get_key_for_missing_alias(self, kms_client):
        """Test a missing alias describes as None."""
        kms_client.describe_key.side_effect = _not_found("DescribeKey")

        assert KeyAliasClient(client=kms_client).get_key_for_alias("missing") is None
        kms_client.describe_key.assert_called_once_with(KeyId="alias/missing")

    def test_get_key_other_errors_propagate(self, kms_client):
        """Test errors other than NotFound are not swallowed."""
        kms_client.describe_key.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "DescribeKey"
        )

        with pytest.raises(ClientError):
            KeyAliasClient(client=kms_client).get_key_for_alias("release")

    def test_context_manager_closes(self, kms_client):
        """Test the client is closed when the block exits."""
        with KeyAliasClient(client=kms_client):
            pass

        kms_client.close.assert_called_once()

    def test_import_private_key_creates_key(self, kms_client, rsa_key_pk8, wrapping_key, wrapping_public_der):
        """Test the full import flow for a new alias."""
        kms_client.describe_key.side_effect = _not_found("DescribeKey")
        kms_client.create_key.return_value = {"KeyMetadata": {"KeyId": "key-1"}}
        kms_client.get_parameters_for_import.return_value = {
            "KeyId": "key-1",
            "PublicKey": wrapping_public_der,
            "ImportToken": b"token",
        }

        metadata = KeyAliasClient(client=kms_client).import_private_key("release", rsa_key_pk8)

        assert metadata["KeyId"] == "key-1"
        kms_client.create_key.assert_called_once_with(
            KeyUsage="SIGN_VERIFY", KeySpec="RSA_2048", Origin="EXTERNAL"
        )
        kms_client.create_alias.assert_called_once_with(AliasName="alias/release", TargetKeyId="key-1")
        kms_client.get_parameters_for_import.assert_called_once_with(
            KeyId="key-1",
            WrappingAlgorithm="RSA_AES_KEY_WRAP_SHA_1",
            WrappingKeySpec="RSA_4096",
        )

        kwargs = kms_client.import_key_material.call_args.kwargs
        assert kwargs["KeyId"] == "key-1"
        assert kwargs["ImportToken"] == b"token"
        assert kwargs["ExpirationModel"] == "KEY_MATERIAL_DOES_NOT_EXPIRE"
        assert unwrap_imported_key(kwargs["EncryptedKeyMaterial"], wrapping_key) == rsa_key_pk8

    def test_import_private_key_existing_key(self, kms_client, rsa_key_pk8, wrapping_public_der):
        """Test an existing alias is reused rather than recreated."""
        kms_client.describe_key.return_value = {"KeyMetadata": {"KeyId": "key-9"}}
        kms_client.get_parameters_for_import.return_value = {
            "PublicKey": wrapping_public_der,
            "ImportToken": b"token",
        }

        KeyAliasClient(client=kms_client).import_private_key("release", rsa_key_pk8)

        kms_client.create_key.assert_not_called()
        assert kms_client.import_key_material.call_args.kwargs["KeyId"] == "key-9"


class TestRequireKeyAlias:
    """Tests for the fail-fast alias precondition."""

    def test_missing_alias(self, kms_client):
        """Test a missing alias fails before any config is built."""
        with pytest.raises(KeyAliasNotFoundError) as exc_info:
            aws_key_config("third", KeyAliasClient(client=kms_client))

        assert exc_info.value.signer_type == "AWS"
        assert "third" in str(exc_info.value)

    def test_existing_alias(self, kms_client):
        """Test an existing alias yields an AWS key config."""
        client = KeyAliasClient(client=kms_client)

        assert require_key_alias("first", client)["AliasName"] == "alias/first"
        assert aws_key_config("first", client) == CloudKeyConfig(SignerType.AWS, "first")


@pytest.fixture
def gcp_client():
    """Mock Cloud KMS client."""
    return MagicMock()


def _key_ring(client) -> KeyRingClient:
    return KeyRingClient("p", "global", "r", client=client)


class TestKeyRingClient:
    """Tests for the GCP import client."""

    def test_names(self, gcp_client):
        """Test resource names are built for the bound key ring."""
        key_ring = _key_ring(gcp_client)

        assert key_ring.key_ring_name == KEY_RING
        assert key_ring.crypto_key_name("k") == f"{KEY_RING}/cryptoKeys/k"
        assert key_ring.crypto_key_version_name("k") == f"{KEY_RING}/cryptoKeys/k/cryptoKeyVersions/1"

    def test_create_key_ring(self, gcp_client):
        """Test the key ring is created under its location."""
        _key_ring(gcp_client).create_key_ring()

        gcp_client.create_key_ring.assert_called_once_with(
            request={"parent": "projects/p/locations/global", "key_ring_id": "r", "key_ring": {}}
        )

    def test_find_crypto_key_version(self, gcp_client):
        """Test finding a key version by key id."""
        gcp_client.list_crypto_keys.return_value = [
            kms_v1.CryptoKey(name=f"{KEY_RING}/cryptoKeys/other"),
            kms_v1.CryptoKey(name=f"{KEY_RING}/cryptoKeys/k"),
        ]
        gcp_client.list_crypto_key_versions.return_value = [
            kms_v1.CryptoKeyVersion(name=f"{KEY_RING}/cryptoKeys/k/cryptoKeyVersions/1"),
        ]
        key_ring = _key_ring(gcp_client)

        assert key_ring.find_crypto_key_version("k").name.endswith("/cryptoKeyVersions/1")
        assert key_ring.find_crypto_key_version("k", "2") is None
        assert key_ring.find_crypto_key_version("missing") is None

    def test_key_config_missing_version(self, gcp_client):
        """Test a missing key version fails fast."""
        gcp_client.list_crypto_keys.return_value = []

        with pytest.raises(KeyAliasNotFoundError):
            _key_ring(gcp_client).key_config("k")

    def test_key_config(self, gcp_client):
        """Test an existing key version yields a GCP key config."""
        name = f"{KEY_RING}/cryptoKeys/k/cryptoKeyVersions/1"
        gcp_client.list_crypto_keys.return_value = [kms_v1.CryptoKey(name=f"{KEY_RING}/cryptoKeys/k")]
        gcp_client.list_crypto_key_versions.return_value = [kms_v1.CryptoKeyVersion(name=name)]

        assert _key_ring(gcp_client).key_config("k") == CloudKeyConfig(SignerType.GCP, name)

    def test_import_private_key(self, gcp_client, rsa_key_pk8, wrapping_key, wrapping_public_pem):
        """Test the full import flow for a new crypto key."""
        crypto_key_name = f"{KEY_RING}/cryptoKeys/k"
        job_name = f"{KEY_RING}/importJobs/k"
        gcp_client.list_crypto_keys.return_value = []
        gcp_client.create_crypto_key.return_value = kms_v1.CryptoKey(name=crypto_key_name)
        gcp_client.create_import_job.return_value = kms_v1.ImportJob(name=job_name)
        gcp_client.get_import_job.return_value = kms_v1.ImportJob(
            name=job_name,
            state=ImportJobState.ACTIVE,
            public_key=kms_v1.ImportJob.WrappingPublicKey(pem=wrapping_public_pem),
        )
        gcp_client.import_crypto_key_version.return_value = kms_v1.CryptoKeyVersion(
            name=f"{crypto_key_name}/cryptoKeyVersions/1"
        )

        key_version = _key_ring(gcp_client).import_private_key("k", rsa_key_pk8)

        assert key_version.name.endswith("/cryptoKeyVersions/1")
        create_request = gcp_client.create_crypto_key.call_args.kwargs["request"]
        assert create_request["crypto_key_id"] == "k"
        assert create_request["crypto_key"]["import_only"] is True
        assert create_request["skip_initial_version_creation"] is True
        job_request = gcp_client.create_import_job.call_args.kwargs["request"]
        assert job_request["import_job_id"] == "k"
        assert job_request["import_job"]["import_method"] == (
            kms_v1.ImportJob.ImportMethod.RSA_OAEP_3072_SHA1_AES_256
        )

        import_request = gcp_client.import_crypto_key_version.call_args.kwargs["request"]
        assert import_request["parent"] == crypto_key_name
        assert import_request["import_job"] == job_name
        assert unwrap_imported_key(import_request["rsa_aes_wrapped_key"], wrapping_key) == rsa_key_pk8


class TestWaitForImportJob:
    """Tests for the bounded import job wait."""

    @pytest.fixture
    def fake_time(self):
        now = [0.0]
        delays = []

        def sleep(delay):
            delays.append(delay)
            now[0] += delay

        return {"clock": lambda: now[0], "sleep": sleep, "delays": delays}

    def test_returns_when_active(self, gcp_client, fake_time):
        """Test polling stops once the job is ACTIVE, backing off in between."""
        gcp_client.get_import_job.side_effect = [
            kms_v1.ImportJob(state=ImportJobState.PENDING_GENERATION),
            kms_v1.ImportJob(state=ImportJobState.PENDING_GENERATION),
            kms_v1.ImportJob(state=ImportJobState.ACTIVE),
        ]

        job = _key_ring(gcp_client).wait_for_import_job(
            "job", timeout=60, poll_interval=1, max_poll_interval=10,
            sleep=fake_time["sleep"], clock=fake_time["clock"],
        )

        assert job.state == ImportJobState.ACTIVE
        assert fake_time["delays"] == [1, 2]
        gcp_client.get_import_job.assert_called_with(request={"name": "job"})

    def test_times_out(self, gcp_client, fake_time):
        """Test the wait is bounded and the backoff is capped."""
        gcp_client.get_import_job.return_value = kms_v1.ImportJob(
            state=ImportJobState.PENDING_GENERATION
        )

        with pytest.raises(ImportJobTimeoutError):
            _key_ring(gcp_client).wait_for_import_job(
                "job", timeout=10, poll_interval=1, max_poll_interval=4,
                sleep=fake_time["sleep"], clock=fake_time["clock"],
            )

        assert fake_time["delays"] == [1, 2, 4, 3]

    def test_settings_defaults(self, gcp_client, fake_time, monkeypatch):
        """Test limits default to settings."""
        monkeypatch.setenv("IMPORT_JOB_TIMEOUT", "3")
        monkeypatch.setenv("IMPORT_JOB_POLL_INTERVAL", "2")
        gcp_client.get_import_job.return_value = kms_v1.ImportJob(
            state=ImportJobState.PENDING_GENERATION
        )

        with pytest.raises(ImportJobTimeoutError):
            _key_ring(gcp_client).wait_for_import_job(
                "job", sleep=fake_time["sleep"], clock=fake_time["clock"],
            )

        assert fake_time["delays"] == [2, 1]

    def test_expired_job_fails_immediately(self, gcp_client, fake_time):
        """Test a job that expired is reported at once instead of polled to the deadline."""
        gcp_client.get_import_job.side_effect = [
            kms_v1.ImportJob(state=ImportJobState.PENDING_GENERATION),
            kms_v1.ImportJob(state=ImportJobState.EXPIRED),
        ]

        with pytest.raises(ImportJobError) as exc_info:
            _key_ring(gcp_client).wait_for_import_job(
                "job", timeout=60, poll_interval=1, max_poll_interval=10,
                sleep=fake_time["sleep"], clock=fake_time["clock"],
            )

        assert not isinstance(exc_info.value, ImportJobTimeoutError)
        assert "EXPIRED" in str(exc_info.value)
        assert fake_time["delays"] == [1]
