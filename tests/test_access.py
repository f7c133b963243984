from types import SimpleNamespace

import pytest

from support_portal.access.domain.value_objects import (
    DEFAULT_ROLE_PERMISSIONS,
    AccessEvaluator,
    PermissionTable,
)
from support_portal.config import Role
from tests.conftest import make_user


@pytest.fixture()
def evaluator():
    return AccessEvaluator()


def _ticket(department):
    return SimpleNamespace(department=department)


def test_role_permissions_come_from_table(evaluator):
    agent = make_user("a", Role.AGENT, "Operations")
    assert evaluator.has_permission(agent, "view:tickets")
    assert not evaluator.has_permission(agent, "edit:config")


def test_custom_permissions_replace_role_permissions(evaluator):
    owner = make_user("o", Role.OWNER, "Tech", custom_permissions=["view:tickets"])

    assert "edit:tickets" in DEFAULT_ROLE_PERMISSIONS[Role.OWNER.value]
    assert evaluator.has_permission(owner, "view:tickets")
    assert not evaluator.has_permission(owner, "edit:tickets")
    assert evaluator.effective_permissions(owner) == frozenset({"view:tickets"})


def test_empty_custom_permissions_fall_back_to_role(evaluator):
    owner = make_user("o", Role.OWNER, "Tech", custom_permissions=[])
    assert evaluator.has_permission(owner, "edit:config")


def test_no_user_fails_closed(evaluator):
    assert not evaluator.has_permission(None, "view:tickets")
    assert not evaluator.has_role(None, [Role.OWNER])
    assert not evaluator.can_view_ticket(None, _ticket("Operations"))


def test_unknown_role_has_no_permissions(evaluator):
    ghost = make_user("g", "Intern", "Operations")
    assert evaluator.effective_permissions(ghost) == frozenset()
    assert not evaluator.has_permission(ghost, "view:tickets")


def test_has_role_is_exact_match_without_hierarchy(evaluator):
    owner = make_user("o", Role.OWNER)
    assert evaluator.has_role(owner, [Role.OWNER, Role.ADMIN])
    assert evaluator.has_role(owner, ["Owner"])
    assert not evaluator.has_role(owner, [Role.ADMIN])
    assert not evaluator.has_role(owner, ["owner"])


def test_injected_permission_table():
    table = PermissionTable(role_permissions={"Agent": ["view:tickets"]})
    evaluator = AccessEvaluator(table)
    agent = make_user("a", Role.AGENT)

    assert evaluator.has_permission(agent, "view:tickets")
    assert not evaluator.has_permission(agent, "create:tickets")
    assert evaluator.effective_permissions(make_user("o", Role.OWNER)) == frozenset()


def test_has_any_permission(evaluator):
    lead = make_user("l", Role.LEAD)
    assert evaluator.has_any_permission(lead, ["edit:config", "view:team_tickets"])
    assert not evaluator.has_any_permission(lead, ["edit:config", "delete:users"])


class TestDepartmentRules:
    def test_privileged_roles_and_cx_see_everything(self, evaluator):
        ticket = _ticket("Finance")
        assert evaluator.can_view_ticket(make_user("o", Role.OWNER, "Tech"), ticket)
        assert evaluator.can_view_ticket(make_user("a", Role.ADMIN, None), ticket)
        assert evaluator.can_view_ticket(make_user("c", Role.AGENT, "CX"), ticket)

    def test_other_departments_see_own_tickets_only(self, evaluator):
        ops = make_user("ops", Role.MANAGER, "Operations")
        assert evaluator.can_view_ticket(ops, _ticket("Operations"))
        assert not evaluator.can_view_ticket(ops, _ticket("Finance"))

    def test_user_without_department_sees_nothing(self, evaluator):
        assert not evaluator.can_view_ticket(make_user("x", Role.AGENT, None), _ticket("Operations"))

    def test_filter_tickets(self, evaluator):
        tickets = [_ticket("Operations"), _ticket("Finance"), _ticket("Operations")]
        ops = make_user("ops", Role.AGENT, "Operations")
        assert len(evaluator.filter_tickets_by_department_access(tickets, ops)) == 2

    def test_limited_update_allowed_in_own_department(self, evaluator):
        ops = make_user("ops", Role.AGENT, "Operations")
        updates = {"assignee_id": "u1", "status": "Open", "tags": ["x"], "sla_status": "at_risk"}
        assert evaluator.validate_ticket_update(ops, _ticket("Operations"), updates) is None

    def test_restricted_fields_denied_outside_cx(self, evaluator):
        ops = make_user("ops", Role.AGENT, "Operations")
        denial = evaluator.validate_ticket_update(ops, _ticket("Operations"), {"subject": "x", "status": "Open"})
        assert denial is not None
        assert "subject" in denial

    def test_escalation_flag_is_restricted(self, evaluator):
        ops = make_user("ops", Role.AGENT, "Operations")
        assert evaluator.validate_ticket_update(ops, _ticket("Operations"), {"is_escalated": True})

    def test_update_in_other_department_denied(self, evaluator):
        ops = make_user("ops", Role.AGENT, "Operations")
        denial = evaluator.validate_ticket_update(ops, _ticket("Finance"), {"status": "Open"})
        assert "Operations" in denial

    def test_cx_may_edit_details(self, evaluator):
        cx = make_user("c", Role.AGENT, "CX")
        assert evaluator.can_edit_ticket_details(cx, _ticket("Finance"))
        assert evaluator.validate_ticket_update(cx, _ticket("Finance"), {"subject": "x"}) is None

    def test_access_summary(self, evaluator):
        summary = evaluator.department_access_summary(make_user("ops", Role.AGENT, "Operations"))
        assert summary["departments"] == ["Operations"]
        assert not summary["can_view_all_departments"]

        summary = evaluator.department_access_summary(make_user("o", Role.OWNER, "Tech"))
        assert summary["departments"] == ["All"]
        assert summary["restrictions"] == []
