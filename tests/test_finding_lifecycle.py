"""
Finding lifecycle tests.

Covers:
    1. create_finding guards (leader only, area membership, required fields)
    2. set_due_date: responsible only, exactly once, resolves the assignment task
    3. close_finding: responsible only, idempotent, resolves pending tasks once
    4. update_status rules
    5. Overdue derivation against an injected clock
    6. Listing filters / search / sort / pagination
    7. End-to-end walk -> finding -> due date -> close scenario
"""

from datetime import date
from unittest.mock import patch

import pytest

from gemba.core.clock import FixedClock
from gemba.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from gemba.models.notification import Notification
from gemba.services import finding_lifecycle, walk_service
from gemba.services.notification import NotificationService
from gemba.services.repositories import FindingRepository


def _create(actor, walk, responsible, **kw):
    fields = dict(
        category="Orden",
        description="Cajas en pasillo",
        responsible_id=responsible.id,
        area="Pintura",
    )
    fields.update(kw)
    return finding_lifecycle.create_finding(actor.id, walk.id, **fields)


# ═════════════════════════════════════════════════════════════════════════════
# 1. create_finding
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateFinding:
    def test_leader_creates_open_finding_and_task(self, walk, leader, responsible):
        result = _create(leader, walk, responsible, attachments=["https://cdn/x.jpg", ""])

        f = result["finding"]
        assert result["action"] == "create"
        assert result["new_status"] == "open"
        assert f["status"] == "open"
        assert f["due_date"] is None
        assert f["area"] == "Pintura"
        assert f["attachment_urls"] == ["https://cdn/x.jpg"]

        task = Notification.query.filter_by(related_finding_id=f["id"]).one()
        assert task.user_id == responsible.id
        assert task.type == "finding_assigned"
        assert task.related_walk_id == walk.id
        assert task.is_action_required is True
        assert task.is_action_completed is False

    @pytest.mark.parametrize("who", ["admin", "participant", "responsible", "outsider"])
    def test_only_leader(self, request, walk, responsible, who):
        actor = request.getfixturevalue(who)
        with pytest.raises(ForbiddenError):
            _create(actor, walk, responsible)

    def test_leaderless_walk_accepts_no_findings(self, make_walk, admin, responsible):
        walk = make_walk(leader_id=None)
        with pytest.raises(ForbiddenError):
            _create(admin, walk, responsible)

    def test_area_must_belong_to_walk(self, walk, leader, responsible):
        with pytest.raises(ValidationError) as exc:
            _create(leader, walk, responsible, area="Almacen")
        assert exc.value.details["walk_areas"] == ["Ensamble", "Pintura"]

    def test_area_optional(self, walk, leader, responsible):
        assert _create(leader, walk, responsible, area=None)["finding"]["area"] is None

    @pytest.mark.parametrize("field", ["category", "description", "responsible_id"])
    def test_required_fields(self, walk, leader, responsible, field):
        with pytest.raises(ValidationError) as exc:
            _create(leader, walk, responsible, **{field: "  "})
        assert field in exc.value.details

    def test_unknown_responsible(self, walk, leader, responsible):
        with pytest.raises(ValidationError):
            _create(leader, walk, responsible, responsible_id="ghost")

    def test_missing_walk(self, leader, responsible):
        with pytest.raises(NotFoundError):
            finding_lifecycle.create_finding(
                leader.id, 999, category="c", description="d", responsible_id=responsible.id,
            )

    def test_missing_walk_id(self, leader, responsible):
        with pytest.raises(ValidationError):
            finding_lifecycle.create_finding(
                leader.id, None, category="c", description="d", responsible_id=responsible.id,
            )


# ═════════════════════════════════════════════════════════════════════════════
# 2. set_due_date
# ═════════════════════════════════════════════════════════════════════════════


class TestSetDueDate:
    def test_responsible_sets_date_and_completes_task(self, finding, responsible):
        result = finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-04-01")

        assert result["finding"]["due_date"] == "2024-04-01"
        assert result["new_status"] == "open"
        task = Notification.query.filter_by(related_finding_id=finding.id).one()
        assert task.is_action_completed is True
        assert NotificationService.pending_action_count(responsible.id) == 0

    def test_european_format_accepted(self, finding, responsible):
        result = finding_lifecycle.set_due_date(responsible.id, finding.id, "01.04.2024")
        assert result["finding"]["due_date"] == "2024-04-01"

    @pytest.mark.parametrize("who", ["admin", "leader", "participant", "outsider"])
    def test_only_responsible(self, request, finding, who):
        with pytest.raises(ForbiddenError):
            finding_lifecycle.set_due_date(request.getfixturevalue(who).id, finding.id, "2024-04-01")
        assert FindingRepository.get_by_id(finding.id).due_date is None

    def test_second_set_rejected_and_first_kept(self, finding, responsible):
        finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-04-01")

        with pytest.raises(InvalidStateError):
            finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-05-01")
        assert FindingRepository.get_by_id(finding.id).due_date == date(2024, 4, 1)

    def test_lost_race_reports_conflict(self, finding, responsible):
        with patch.object(FindingRepository, "set_due_date_if_unset", return_value=False):
            with pytest.raises(InvalidStateError):
                finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-04-01")
        assert NotificationService.pending_action_count(responsible.id) == 1

    def test_closed_finding_rejects_due_date(self, finding, responsible):
        finding_lifecycle.close_finding(responsible.id, finding.id)
        with pytest.raises(InvalidStateError):
            finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-04-01")

    @pytest.mark.parametrize("value", [None, "", "31/02/2024"])
    def test_bad_date(self, finding, responsible, value):
        with pytest.raises(ValidationError):
            finding_lifecycle.set_due_date(responsible.id, finding.id, value)


# ═════════════════════════════════════════════════════════════════════════════
# 3. close_finding
# ═════════════════════════════════════════════════════════════════════════════


class TestCloseFinding:
    def test_close_records_evidence(self, finding, responsible):
        result = finding_lifecycle.close_finding(
            responsible.id, finding.id, "Guarda reinstalada", "https://cdn/after.jpg",
        )
        assert result["previous_status"] == "open"
        assert result["new_status"] == "closed"
        assert result["changed"] is True
        assert result["finding"]["close_comment"] == "Guarda reinstalada"
        assert result["finding"]["close_evidence_url"] == "https://cdn/after.jpg"

    def test_close_without_due_date_is_allowed(self, finding, responsible):
        result = finding_lifecycle.close_finding(responsible.id, finding.id)
        assert result["new_status"] == "closed"
        assert result["finding"]["due_date"] is None
        assert NotificationService.pending_action_count(responsible.id) == 0

    def test_close_twice_is_noop(self, finding, responsible):
        finding_lifecycle.close_finding(responsible.id, finding.id, "primero")

        with patch.object(NotificationService, "mark_action_completed") as resolver:
            again = finding_lifecycle.close_finding(responsible.id, finding.id, "segundo")

        resolver.assert_not_called()
        assert again["changed"] is False
        assert again["new_status"] == "closed"
        assert again["finding"]["close_comment"] == "primero"

    @pytest.mark.parametrize("who", ["admin", "leader", "participant", "outsider"])
    def test_only_responsible(self, request, finding, who):
        with pytest.raises(ForbiddenError):
            finding_lifecycle.close_finding(request.getfixturevalue(who).id, finding.id)
        assert FindingRepository.get_by_id(finding.id).status == "open"

    def test_failed_resolution_rolls_back_close(self, finding, responsible):
        with patch.object(
            NotificationService, "mark_action_completed", side_effect=RuntimeError("db gone"),
        ):
            with pytest.raises(RuntimeError):
                finding_lifecycle.close_finding(responsible.id, finding.id)
        assert FindingRepository.get_by_id(finding.id).status == "open"

    def test_missing_finding(self, responsible):
        with pytest.raises(NotFoundError):
            finding_lifecycle.close_finding(responsible.id, 123)


# ═════════════════════════════════════════════════════════════════════════════
# 4. update_status
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateStatus:
    def test_responsible_close_delegates(self, finding, responsible):
        result = finding_lifecycle.update_status(
            responsible.id, finding.id, "closed", comment="listo",
        )
        assert result["action"] == "close"
        assert result["finding"]["close_comment"] == "listo"

    def test_creator_cannot_close(self, finding, admin):
        with pytest.raises(ForbiddenError):
            finding_lifecycle.update_status(admin.id, finding.id, "closed")
        assert FindingRepository.get_by_id(finding.id).status == "open"

    def test_creator_open_to_open_is_noop(self, finding, admin):
        result = finding_lifecycle.update_status(admin.id, finding.id, "open")
        assert result["changed"] is False
        assert result["new_status"] == "open"

    def test_leader_has_no_status_rights(self, finding, leader):
        with pytest.raises(ForbiddenError):
            finding_lifecycle.update_status(leader.id, finding.id, "open")

    def test_reopen_rejected(self, finding, admin, responsible):
        finding_lifecycle.close_finding(responsible.id, finding.id)
        with pytest.raises(InvalidStateError):
            finding_lifecycle.update_status(admin.id, finding.id, "open")

    def test_unknown_status(self, finding, responsible):
        with pytest.raises(ValidationError):
            finding_lifecycle.update_status(responsible.id, finding.id, "in_progress")


# ═════════════════════════════════════════════════════════════════════════════
# 5. Overdue
# ═════════════════════════════════════════════════════════════════════════════


class TestOverdue:
    def test_overdue_follows_clock(self, finding, responsible):
        finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-03-15")

        before = finding_lifecycle.get_finding(finding.id, clock=FixedClock(date(2024, 3, 15)))
        after = finding_lifecycle.get_finding(finding.id, clock=FixedClock(date(2024, 3, 16)))

        assert before["is_overdue"] is False
        assert after["is_overdue"] is True

    def test_closed_is_never_overdue(self, finding, responsible):
        finding_lifecycle.set_due_date(responsible.id, finding.id, "2024-03-01")
        finding_lifecycle.close_finding(responsible.id, finding.id)
        assert finding_lifecycle.get_finding(finding.id)["is_overdue"] is False

    def test_no_due_date_is_not_overdue(self, finding):
        assert finding_lifecycle.get_finding(finding.id)["is_overdue"] is False


# ═════════════════════════════════════════════════════════════════════════════
# 6. Listing
# ═════════════════════════════════════════════════════════════════════════════


class TestListFindings:
    @pytest.fixture()
    def three(self, walk, leader, responsible, participant):
        a = _create(leader, walk, responsible, category="Seguridad", description="Casco roto",
                    area="Ensamble")["finding_id"]
        b = _create(leader, walk, participant, category="Orden", description="Cajas",
                    area="Pintura")["finding_id"]
        c = _create(leader, walk, responsible, category="Calidad", description="Rebaba")["finding_id"]
        finding_lifecycle.close_finding(responsible.id, c)
        return a, b, c

    def test_status_filter(self, three):
        a, b, c = three
        ids = [f["id"] for f in finding_lifecycle.list_findings(status="open")["findings"]]
        assert sorted(ids) == sorted([a, b])

    def test_responsible_filter(self, three, participant):
        _, b, _ = three
        result = finding_lifecycle.list_findings(responsible_id=participant.id)
        assert [f["id"] for f in result["findings"]] == [b]

    def test_search_matches_description_category_and_people(self, three):
        a, b, c = three
        assert [f["id"] for f in finding_lifecycle.list_findings(search="casco")["findings"]] == [a]
        assert [f["id"] for f in finding_lifecycle.list_findings(search="CALIDAD")["findings"]] == [c]
        assert [f["id"] for f in finding_lifecycle.list_findings(search="pia")["findings"]] == [b]

    def test_sort_by_category(self, three):
        result = finding_lifecycle.list_findings(sort_by="category", sort_order="asc")
        assert [f["category"] for f in result["findings"]] == ["Calidad", "Orden", "Seguridad"]

    def test_pagination(self, three):
        result = finding_lifecycle.list_findings(limit=2, page=2)
        assert len(result["findings"]) == 1
        assert result["pagination"] == {
            "page": 2, "limit": 2, "total": 3, "total_pages": 2, "has_more": False,
        }

    def test_items_carry_walk_areas_and_responsible(self, three, responsible):
        item = finding_lifecycle.list_findings(responsible_id=responsible.id)["findings"][0]
        assert item["areas"] == ["Ensamble", "Pintura"]
        assert item["responsible_user"]["username"] == "responsable"


# ═════════════════════════════════════════════════════════════════════════════
# 7. End-to-end
# ═════════════════════════════════════════════════════════════════════════════


def test_walk_to_closed_finding_scenario(admin, leader, participant, responsible):
    created = walk_service.create_walk(admin.id, {
        "date": "2024-03-01",
        "areas": ["Ensamble"],
        "leader_id": leader.id,
        "participant_ids": [participant.id],
    })
    walk_id = created["walk"]["id"]
    assert Notification.query.filter_by(type="gemba_walk_assigned").count() == 2

    result = finding_lifecycle.create_finding(
        leader.id, walk_id, category="Seguridad", description="Guarda retirada",
        responsible_id=responsible.id, area="Ensamble",
    )
    fid = result["finding_id"]
    assert NotificationService.pending_action_count(responsible.id) == 1

    finding_lifecycle.set_due_date(responsible.id, fid, "2024-03-15")
    assert NotificationService.pending_action_count(responsible.id) == 0
    with pytest.raises(InvalidStateError):
        finding_lifecycle.set_due_date(responsible.id, fid, "2024-03-20")

    closed = finding_lifecycle.close_finding(responsible.id, fid, "Corregido")
    assert closed["new_status"] == "closed"
    assert closed["finding"]["due_date"] == "2024-03-15"

    again = finding_lifecycle.close_finding(responsible.id, fid)
    assert again["changed"] is False

    stats = walk_service.get_walk_detail(leader.id, walk_id)["stats"]
    assert stats == {"total": 1, "open": 0, "closed": 1, "overdue": 0}


class TestFindingRepository:
    def test_update_and_responsible_listing(self, finding, responsible, participant):
        updated = FindingRepository.update(finding.id, category="Calidad")
        assert updated.category == "Calidad"
        assert FindingRepository.update(9999, category="x") is None

        assert [f.id for f in FindingRepository.list_by_responsible(responsible.id)] == [finding.id]
        assert FindingRepository.list_by_responsible(participant.id) == []

    def test_conditional_updates_report_losers(self, finding):
        assert FindingRepository.set_due_date_if_unset(finding.id, date(2024, 4, 1)) is True
        assert FindingRepository.set_due_date_if_unset(finding.id, date(2024, 5, 1)) is False
        assert FindingRepository.close_if_open(finding.id) is True
        assert FindingRepository.close_if_open(finding.id) is False
