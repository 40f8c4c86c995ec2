"""Capability checks performed once at the boundary of every core call.

The identity collaborator authenticates callers; the core only receives an
:class:`ActorContext` and never reads ambient session state.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import Unauthorized


class Role(str, enum.Enum):
    PARTICIPANT = "participant"
    OPERATOR = "operator"
    OWNER = "owner"


class Capability(enum.Enum):
    CLAIM = "claim"
    MANAGE_DRAWS = "manage_draws"
    REVIEW_PAYMENTS = "review_payments"
    DELETE_PARTICIPATIONS = "delete_participations"
    RESOLVE_DRAWS = "resolve_draws"
    READ_AUDIT = "read_audit"
    ANY_DRAW = "any_draw"


_OPERATOR_CAPABILITIES = frozenset(
    {
        Capability.CLAIM,
        Capability.MANAGE_DRAWS,
        Capability.REVIEW_PAYMENTS,
        Capability.DELETE_PARTICIPATIONS,
        Capability.RESOLVE_DRAWS,
        Capability.READ_AUDIT,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.PARTICIPANT: frozenset({Capability.CLAIM}),
    Role.OPERATOR: _OPERATOR_CAPABILITIES,
    Role.OWNER: _OPERATOR_CAPABILITIES | {Capability.ANY_DRAW},
}


@dataclass(frozen=True)
class ActorContext:
    """Who is calling, as asserted by the identity collaborator."""

    actor_id: str
    role: Role

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES[self.role]

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


def require(ctx: ActorContext, capability: Capability) -> None:
    """Raise :class:`Unauthorized` unless ``ctx`` holds ``capability``."""

    if not ctx.can(capability):
        raise Unauthorized(
            f"Role '{ctx.role.value}' may not perform '{capability.value}'"
        )


def require_draw_access(ctx: ActorContext, capability: Capability, creator_id: str) -> None:
    """Like :func:`require`, and operators may only act on draws they created."""

    require(ctx, capability)
    if ctx.can(Capability.ANY_DRAW):
        return
    if ctx.actor_id != creator_id:
        raise Unauthorized(f"Actor '{ctx.actor_id}' does not own this draw")
