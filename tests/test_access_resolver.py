"""Role resolution against walks and findings (gemba.services.access)."""

from types import SimpleNamespace

import pytest

from gemba.core.exceptions import ForbiddenError
from gemba.services.access import (
    CREATOR,
    LEADER,
    PARTICIPANT,
    RESPONSIBLE,
    can_view_walk,
    require_role,
    resolve_roles,
)


def _walk(**kw):
    defaults = dict(created_by="admin", leader_id="lead", participant_ids=["p1", "p2"])
    defaults.update(kw)
    return SimpleNamespace(**defaults)


def test_single_roles():
    walk = _walk()
    finding = SimpleNamespace(responsible_id="resp")
    assert resolve_roles("admin", walk) == {CREATOR}
    assert resolve_roles("lead", walk) == {LEADER}
    assert resolve_roles("p2", walk) == {PARTICIPANT}
    assert resolve_roles("resp", walk, finding) == {RESPONSIBLE}


def test_roles_combine():
    walk = _walk(created_by="lead", participant_ids=["lead"])
    finding = SimpleNamespace(responsible_id="lead")
    assert resolve_roles("lead", walk, finding) == {CREATOR, LEADER, PARTICIPANT, RESPONSIBLE}


def test_responsible_needs_finding():
    assert RESPONSIBLE not in resolve_roles("resp", _walk())


def test_stranger_and_anonymous_hold_nothing():
    walk = _walk()
    assert resolve_roles("nobody", walk) == frozenset()
    assert resolve_roles(None, walk) == frozenset()


def test_leaderless_walk_grants_no_leader_role():
    assert resolve_roles(None, _walk(leader_id=None)) == frozenset()
    assert LEADER not in resolve_roles("x", _walk(leader_id=None))


def test_can_view_walk():
    walk = _walk()
    assert can_view_walk("p1", walk)
    assert can_view_walk("admin", walk)
    assert not can_view_walk("resp", walk)


def test_require_role_passes_on_intersection():
    require_role(frozenset({CREATOR, LEADER}), LEADER, action="create_finding")


def test_require_role_raises_with_held_roles():
    with pytest.raises(ForbiddenError) as exc:
        require_role(frozenset({PARTICIPANT}), LEADER, action="create_finding")
    assert exc.value.action == "create_finding"
    assert exc.value.roles == {PARTICIPANT}
