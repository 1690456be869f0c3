import pytest

from utils.role_panels.access import can_access_panel, can_acquire_role, outranks
from utils.role_panels.models import Panel, RoleEntry


def make_panel(required_roles):
    return Panel(community_id=1, panel_id="p", channel_id=2, name="P", required_roles=required_roles)


class TestPanelAccess:
    """Тесты доступа к панели"""

    def test_panel_without_requirements_is_open(self):
        check = can_access_panel(set(), make_panel([]))
        assert check.allowed
        assert check.missing == []

    def test_missing_required_roles_are_listed_in_order(self):
        check = can_access_panel({11}, make_panel([10, 11, 12]))
        assert not check.allowed
        assert check.missing == [10, 12]

    def test_all_required_roles_held(self):
        assert can_access_panel([10, 11, 99], make_panel([10, 11])).allowed


class TestRolePrerequisites:
    """Тесты предварительных ролей"""

    def test_prerequisites_missing(self):
        entry = RoleEntry(role_id=5, name="TeamB", prerequisites=[1, 2])
        check = can_acquire_role({2}, entry)
        assert not check.allowed
        assert check.missing == [1]

    def test_prerequisites_satisfied(self):
        entry = RoleEntry(role_id=5, name="TeamB", prerequisites=[1, 2])
        assert can_acquire_role({1, 2, 3}, entry).allowed

    def test_role_is_never_its_own_prerequisite(self):
        entry = RoleEntry(role_id=5, name="TeamB", prerequisites=[5, 1, 1])
        assert entry.prerequisites == [1]
        assert can_acquire_role({1}, entry).allowed


class TestOutranks:
    @pytest.mark.parametrize("actor, target, expected", [
        (10, 5, True),
        (5, 5, False),
        (4, 5, False),
        (10, None, False),
    ])
    def test_strictly_above(self, actor, target, expected):
        assert outranks(actor, target) is expected
