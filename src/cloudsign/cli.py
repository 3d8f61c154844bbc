"""Command-line entry point for one-off key import and signing.

Usage:
    cloudsign import-key aws --alias release-key --key release.pk8
    cloudsign import-key gcp --key-id release-key --key release.pk8 \\
        [--project P --location L --key-ring R]
    cloudsign sign --backend AWS --alias release-key \\
        --algorithm SHA256withRSA --input data.bin --output data.sig
    cloudsign sign --local-key release.pk8 --algorithm SHA256withRSA \\
        --input data.bin --output data.sig
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from cloudsign.config import get_settings
from cloudsign.crypto import KeyWrapError
from cloudsign.logging import configure_logging
from cloudsign.provisioning.gcp import ImportJobError
from cloudsign.signing import (
    CloudKeyConfig,
    LocalKeyConfig,
    SigningError,
    get_signer_engine,
    load_private_key,
)

logger = logging.getLogger(__name__)


def _import_aws(args: argparse.Namespace) -> None:
    from cloudsign.provisioning.aws import KeyAliasClient

    private_key_bytes = Path(args.key).read_bytes()
    with KeyAliasClient(region=args.region) as client:
        key_metadata = client.import_private_key(args.alias, private_key_bytes, args.key_spec)
    print(f"Imported into {key_metadata['KeyId']} (alias/{args.alias})")


def _import_gcp(args: argparse.Namespace) -> None:
    from cloudsign.provisioning.gcp import KeyRingClient

    settings = get_settings()
    project = args.project or settings.gcp_project
    location = args.location or settings.gcp_location
    key_ring = args.key_ring or settings.gcp_key_ring
    if not project or not key_ring:
        raise SystemExit("GCP project and key ring are required (--project/--key-ring or GCP_PROJECT/GCP_KEY_RING)")

    private_key_bytes = Path(args.key).read_bytes()
    with KeyRingClient(project, location, key_ring) as client:
        if args.create_key_ring:
            client.create_key_ring()
        key_version = client.import_private_key(args.key_id, private_key_bytes)
    print(f"Imported as {key_version.name}")


def _sign(args: argparse.Namespace) -> None:
    if args.local_key:
        key_config = LocalKeyConfig(load_private_key(Path(args.local_key).read_bytes()))
    elif args.backend and args.alias:
        key_config = CloudKeyConfig(args.backend, args.alias)
    else:
        raise SystemExit("Either --local-key or both --backend and --alias are required")

    engine = get_signer_engine(key_config, args.algorithm)
    signature = engine.sign(Path(args.input).read_bytes())
    Path(args.output).write_bytes(signature)
    print(f"Wrote {len(signature)} byte signature to {args.output}")


def _show_config(args: argparse.Namespace) -> None:
    print(json.dumps(get_settings().get_safe_dict(), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudsign", description="Cloud KMS signing utilities")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    import_key = commands.add_parser("import-key", help="Import a PKCS#8 private key into a KMS")
    providers = import_key.add_subparsers(dest="provider", required=True)

    aws = providers.add_parser("aws", help="Import into AWS KMS")
    aws.add_argument("--alias", required=True, help="Key alias (without alias/ prefix)")
    aws.add_argument("--key", required=True, help="PKCS#8 DER private key file")
    aws.add_argument("--key-spec", default="RSA_2048", help="KMS KeySpec for a new key")
    aws.add_argument("--region", default=None, help="AWS region (default: AWS_REGION)")
    aws.set_defaults(func=_import_aws)

    gcp = providers.add_parser("gcp", help="Import into Google Cloud KMS")
    gcp.add_argument("--key-id", required=True, help="Crypto key id inside the key ring")
    gcp.add_argument("--key", required=True, help="PKCS#8 DER private key file")
    gcp.add_argument("--project", default=None)
    gcp.add_argument("--location", default=None)
    gcp.add_argument("--key-ring", default=None)
    gcp.add_argument("--create-key-ring", action="store_true", help="Create the key ring first")
    gcp.set_defaults(func=_import_gcp)

    sign = commands.add_parser("sign", help="Sign a file")
    sign.add_argument("--backend", default=None, help="Cloud service type, e.g. AWS or GCP")
    sign.add_argument("--alias", default=None, help="Cloud key alias or resource name")
    sign.add_argument("--local-key", default=None, help="PKCS#8 private key file")
    sign.add_argument("--algorithm", default=None, help="e.g. SHA256withRSA")
    sign.add_argument("--input", required=True)
    sign.add_argument("--output", required=True)
    sign.set_defaults(func=_sign)

    config = commands.add_parser("config", help="Show effective settings (secrets redacted)")
    config.set_defaults(func=_show_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        args.func(args)
    except (SigningError, KeyWrapError, ImportJobError, ValueError, OSError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
