"""
sessguard - Client fingerprints.

A fingerprint is an opaque, deterministic-per-client token derived from
request context. It is only ever compared for equality, never reversed.
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import SessionConfig


# ============================================================================
# RequestContext
# ============================================================================

@dataclass
class RequestContext:
    """
    The parts of an incoming request fingerprints are derived from.

    Attributes:
        remote_addr: Client network address
        user_agent: Client-declared agent string
        headers: Remaining request headers (lower-cased names)
    """

    remote_addr: str | None = None
    user_agent: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], remote_addr: str | None = None) -> RequestContext:
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            remote_addr=remote_addr,
            user_agent=lowered.get("user-agent"),
            headers=lowered,
        )


# ============================================================================
# FingerprintGenerator Protocol
# ============================================================================

class FingerprintGenerator(Protocol):
    def generate(self, request: RequestContext) -> str:
        ...


class UserAgentFingerprint:
    """Fingerprint from the User-Agent header."""

    def generate(self, request: RequestContext) -> str:
        return request.user_agent or ""


class RemoteAddrFingerprint:
    """
    Fingerprint from the client address.

    With ``mask_network`` the address is reduced to its /24 (IPv4) or
    /64 (IPv6) network, so clients hopping between addresses of the
    same provider keep their fingerprint.
    """

    def __init__(self, mask_network: bool = False):
        self.mask_network = mask_network

    def generate(self, request: RequestContext) -> str:
        if not request.remote_addr:
            return ""
        if not self.mask_network:
            return request.remote_addr
        try:
            address = ipaddress.ip_address(request.remote_addr)
        except ValueError:
            return request.remote_addr
        prefix = 24 if address.version == 4 else 64
        return str(ipaddress.ip_network(f"{address}/{prefix}", strict=False))


class CompositeFingerprint:
    """
    Combines several generators into one SHA-256 digest.

    When a secret is given the digest is an HMAC, so stored fingerprints
    cannot be matched against guessed client attributes.

    Example:
        >>> generator = CompositeFingerprint(
        ...     [UserAgentFingerprint(), RemoteAddrFingerprint()],
        ...     secret="s3cr3t",
        ... )
        >>> generator.generate(RequestContext("10.0.0.1", "curl/8.0"))
        '5f1c...'
    """

    def __init__(self, generators: Sequence[FingerprintGenerator], secret: str | bytes | None = None):
        self.generators = list(generators)
        if isinstance(secret, str):
            secret = secret.encode()
        self.secret = secret

    def generate(self, request: RequestContext) -> str:
        parts = [g.generate(request) for g in self.generators]
        material = "\x1f".join(parts).encode("utf-8")
        if self.secret:
            return hmac.new(self.secret, material, hashlib.sha256).hexdigest()
        return hashlib.sha256(material).hexdigest()


# ============================================================================
# Fingerprint Factory
# ============================================================================

_GENERATORS = {
    "user_agent": lambda config: UserAgentFingerprint(),
    "remote_addr": lambda config: RemoteAddrFingerprint(mask_network=config.fingerprint_mask_network),
}


def create_fingerprint_generator(config: SessionConfig) -> FingerprintGenerator | None:
    """
    Create fingerprint generator from configuration.

    Returns:
        Generator, or None when fingerprinting is disabled

    Raises:
        ValueError: If a fingerprint source is unknown
    """
    if not config.fingerprint:
        return None

    generators = []
    for name in config.fingerprint:
        if name not in _GENERATORS:
            raise ValueError(f"Unknown fingerprint source: {name}")
        generators.append(_GENERATORS[name](config))

    return CompositeFingerprint(generators, secret=config.fingerprint_secret)
