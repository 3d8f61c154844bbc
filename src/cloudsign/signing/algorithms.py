"""Signature algorithm mapping tables.

Callers name algorithms with JCA-style identifiers ("SHA256withRSA/PSS");
each backend maps them to its own code. Tables are closed: an identifier
missing from a table is an error, never a default.
"""

from types import MappingProxyType
from typing import Mapping, TypeVar, Union

from cloudsign.signing.base import SignerType, UnsupportedAlgorithmError

SHA256_WITH_RSA = "SHA256withRSA"
SHA512_WITH_RSA = "SHA512withRSA"
SHA256_WITH_RSA_PSS = "SHA256withRSA/PSS"
SHA512_WITH_RSA_PSS = "SHA512withRSA/PSS"
SHA256_WITH_ECDSA = "SHA256withECDSA"
SHA512_WITH_ECDSA = "SHA512withECDSA"
SHA256_WITH_DSA = "SHA256withDSA"

# Local signature schemes
RSA_PKCS1 = "RSA"
RSA_PSS = "RSA/PSS"
ECDSA = "ECDSA"
DSA = "DSA"

AWS_SIGNING_ALGORITHMS: Mapping[str, str] = MappingProxyType({
    SHA256_WITH_RSA_PSS: "RSASSA_PSS_SHA_256",
    SHA512_WITH_RSA_PSS: "RSASSA_PSS_SHA_512",
    SHA256_WITH_RSA: "RSASSA_PKCS1_V1_5_SHA_256",
    SHA512_WITH_RSA: "RSASSA_PKCS1_V1_5_SHA_512",
    SHA256_WITH_ECDSA: "ECDSA_SHA_256",
    SHA512_WITH_ECDSA: "ECDSA_SHA_512",
})

# Values are attribute names on pkcs11.Mechanism
PKCS11_MECHANISMS: Mapping[str, str] = MappingProxyType({
    SHA256_WITH_RSA: "SHA256_RSA_PKCS",
    SHA512_WITH_RSA: "SHA512_RSA_PKCS",
    SHA256_WITH_RSA_PSS: "SHA256_RSA_PKCS_PSS",
    SHA512_WITH_RSA_PSS: "SHA512_RSA_PKCS_PSS",
    SHA256_WITH_ECDSA: "ECDSA_SHA256",
    SHA512_WITH_ECDSA: "ECDSA_SHA512",
})

# (digest name, scheme) used by the in-process engine
LOCAL_ALGORITHMS: Mapping[str, tuple[str, str]] = MappingProxyType({
    SHA256_WITH_RSA: ("SHA256", RSA_PKCS1),
    SHA512_WITH_RSA: ("SHA512", RSA_PKCS1),
    SHA256_WITH_RSA_PSS: ("SHA256", RSA_PSS),
    SHA512_WITH_RSA_PSS: ("SHA512", RSA_PSS),
    SHA256_WITH_ECDSA: ("SHA256", ECDSA),
    SHA512_WITH_ECDSA: ("SHA512", ECDSA),
    SHA256_WITH_DSA: ("SHA256", DSA),
})

T = TypeVar("T")


def resolve_algorithm(
    table: Mapping[str, T],
    algorithm: str,
    signer_type: Union[str, SignerType],
) -> T:
    """Look up a generic algorithm identifier in a backend table.

    Args:
        table: One of the mapping tables above
        algorithm: Generic identifier, e.g. "SHA256withECDSA"
        signer_type: Backend the table belongs to (for the error)

    Returns:
        The backend-specific code

    Raises:
        UnsupportedAlgorithmError: If the identifier is not in the table
    """
    if algorithm is None or algorithm not in table:
        raise UnsupportedAlgorithmError(signer_type, str(algorithm))
    return table[algorithm]
