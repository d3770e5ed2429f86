"""dispatch.signing

Agent keys, assertion signatures and agent fingerprints.

Profile / invariants:
- Agents are identified by their public key in PEM (SubjectPublicKeyInfo) form;
  that text is what an assertion's ``agent`` field carries.
- Signatures use a pure scheme with no pre-hash: Ed25519 or Ed448.  Any other
  key type never verifies.
- The signed message is the claim's CID string (UTF-8), not the claim's
  content; byte-identical claims share one CID and so one signing input.
- Signatures are hex encoded.
- An agent's fingerprint is the SHA-256 hex digest of its public key text.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed448 import Ed448PrivateKey, Ed448PublicKey
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from dispatch.core import LINK_KEY, sha256_bytes
from dispatch.records import Assertion

logger = logging.getLogger(__name__)

PublicKey = Union[Ed25519PublicKey, Ed448PublicKey]
PrivateKey = Union[Ed25519PrivateKey, Ed448PrivateKey]

KEY_TYPES = {"ed25519": Ed25519PrivateKey, "ed448": Ed448PrivateKey}


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def load_public_key(agent: str) -> PublicKey:
    """Parse an agent's PEM public key.

    Raises:
        ValueError for malformed PEM or an unsupported key type
    """
    try:
        key = serialization.load_pem_public_key(agent.encode("utf-8"))
    except UnsupportedAlgorithm as ex:
        raise ValueError(f"unsupported agent key: {ex}") from ex
    if not isinstance(key, (Ed25519PublicKey, Ed448PublicKey)):
        raise ValueError(f"unsupported agent key type: {type(key).__name__}")
    return key


def load_private_key(pem: str) -> PrivateKey:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except UnsupportedAlgorithm as ex:
        raise ValueError(f"unsupported private key: {ex}") from ex
    if not isinstance(key, (Ed25519PrivateKey, Ed448PrivateKey)):
        raise ValueError(f"unsupported private key type: {type(key).__name__}")
    return key


def public_key_pem(private_key: PrivateKey) -> str:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def generate_agent_keypair(key_type: str = "ed25519") -> Dict[str, str]:
    """Generate a new agent profile ``{"private-key": pem, "public-key": pem}``."""
    cls = KEY_TYPES.get(key_type)
    if cls is None:
        raise ValueError(f"unsupported key type: {key_type} (expected one of {sorted(KEY_TYPES)})")
    priv = cls.generate()
    priv_pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return {"private-key": priv_pem, "public-key": public_key_pem(priv)}


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


def sign_claim(private_key_pem: str, claim_cid: str) -> str:
    """Sign a claim CID, returning the hex signature."""
    priv = load_private_key(private_key_pem)
    return priv.sign(claim_cid.encode("utf-8")).hex()


def is_valid_signature(assertion: Union[Assertion, Mapping[str, Any]]) -> bool:
    """Verify an assertion's signature over its claim CID.

    Accepts either a parsed ``Assertion`` or a raw assertion object.  Never
    raises: malformed keys, malformed hex and bad signatures all yield False.
    """
    if isinstance(assertion, Assertion):
        agent, claim_cid, signature = assertion.agent, assertion.claim.cid, assertion.signature
    else:
        try:
            agent = str(assertion["agent"])
            claim_cid = str(assertion["claim"][LINK_KEY])
            signature = str(assertion["signature"])
        except (KeyError, TypeError):
            return False

    try:
        pub = load_public_key(agent)
        sig = bytes.fromhex(signature)
        pub.verify(sig, claim_cid.encode("utf-8"))
    except InvalidSignature:
        logger.debug(f"signature does not verify for claim {claim_cid}")
        return False
    except ValueError as ex:
        logger.debug(f"cannot verify signature for claim {claim_cid}: {ex}")
        return False
    return True


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def fingerprint(agent: str) -> str:
    """One-way, deterministic identifier for an agent's public key."""
    return sha256_bytes(agent.encode("utf-8"))


class FingerprintCache:
    """Session-local agent → fingerprint cache.

    One instance lives for one ingestion/lookup session; nothing is shared
    between sessions.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, agent: object) -> bool:
        return agent in self._cache

    def get(self, agent: str) -> str:
        fp = self._cache.get(agent)
        if fp is None:
            fp = fingerprint(agent)
            self._cache[agent] = fp
        return fp
