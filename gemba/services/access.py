"""
Access Resolver: walk/finding relative roles.

Roles are never global identity traits: they are computed for one user
against one walk (and optionally one finding), and a user may hold several
at once (e.g. creator + leader).

    creator      user_id == walk.created_by
    leader       user_id == walk.leader_id
    participant  user_id in walk participants
    responsible  finding given and user_id == finding.responsible_id

Read access to findings is not role-gated; the empty role set only means
"no mutation rights".

Usage:
    from gemba.services.access import resolve_roles, require_role, LEADER

    roles = resolve_roles(user_id, walk, finding)
    require_role(roles, LEADER, action="create_finding")
"""

import logging

from gemba.core.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

CREATOR = "creator"
LEADER = "leader"
PARTICIPANT = "participant"
RESPONSIBLE = "responsible"

ALL_ROLES = frozenset({CREATOR, LEADER, PARTICIPANT, RESPONSIBLE})

# Roles that grant access to a walk's detail view and listing.
WALK_ACCESS_ROLES = frozenset({CREATOR, LEADER, PARTICIPANT})


def resolve_roles(user_id, walk, finding=None) -> frozenset:
    """Return the set of roles ``user_id`` holds on ``walk`` / ``finding``."""
    if not user_id:
        return frozenset()

    roles = set()
    if walk is not None:
        if walk.created_by == user_id:
            roles.add(CREATOR)
        if walk.leader_id and walk.leader_id == user_id:
            roles.add(LEADER)
        if user_id in walk.participant_ids:
            roles.add(PARTICIPANT)
    if finding is not None and finding.responsible_id == user_id:
        roles.add(RESPONSIBLE)
    return frozenset(roles)


def can_view_walk(user_id, walk) -> bool:
    return bool(resolve_roles(user_id, walk) & WALK_ACCESS_ROLES)


def require_role(roles, *allowed, action: str, message: str | None = None) -> None:
    """Raise ForbiddenError unless ``roles`` intersects ``allowed``."""
    if roles & frozenset(allowed):
        return
    logger.info(
        "Role guard rejected %s: holds=%s needs=%s",
        action, sorted(roles), sorted(allowed),
        extra={"event_type": "forbidden"},
    )
    raise ForbiddenError(action, roles=roles, message=message)
