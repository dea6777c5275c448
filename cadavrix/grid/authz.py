from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from cadavrix.grid.errors import NotAuthorized
from cadavrix.grid.model import Role

Capability = Literal["can_claim", "can_finalize", "can_administer"]


@dataclass(frozen=True)
class Principal:
    """Identity handed in by the (external) auth layer."""
    contributor_id: str
    role: Role = "artist"


@dataclass(frozen=True)
class Capabilities:
    can_claim: bool = False
    can_finalize: bool = False
    can_administer: bool = False


_ROLE_CAPABILITIES: dict[str, Capabilities] = {
    "artist": Capabilities(can_claim=True, can_finalize=True),
    "admin": Capabilities(can_claim=True, can_finalize=True, can_administer=True),
}


def capabilities_for(principal: Principal) -> Capabilities:
    return _ROLE_CAPABILITIES.get(principal.role, Capabilities())


def require(principal: Principal, capability: Capability) -> Capabilities:
    caps = capabilities_for(principal)
    if not getattr(caps, capability):
        raise NotAuthorized(f"{principal.contributor_id} ({principal.role}) lacks {capability}")
    return caps
