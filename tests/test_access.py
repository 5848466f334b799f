"""
Tests for Access Guards

Tests covering:
1. Role-only guards
2. Owner-only guards
3. Owner-or-role guards
4. No-self-approval guards, including admins
5. Unauthenticated callers
"""

from __future__ import annotations

import pytest

from core.access import (
    ADMIN_ONLY,
    AUTHENTICATED,
    OFFICIALS,
    OFFICIALS_NOT_OWNER,
    OWNER_ONLY,
    OWNER_OR_OFFICIAL,
)
from core.actors import Actor, Role
from core.errors import ForbiddenError


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def citizen():
    return Actor(actor_id="citizen-1", role=Role.CITIZEN)


@pytest.fixture
def officer():
    return Actor(actor_id="officer-1", role=Role.LAND_OFFICER)


@pytest.fixture
def admin():
    return Actor(actor_id="admin-1", role=Role.ADMIN)


# =============================================================================
# Role guards
# =============================================================================


class TestRoleGuards:
    def test_authenticated_allows_any_role(self, citizen, officer, admin):
        for actor in (citizen, officer, admin):
            assert AUTHENTICATED.check(actor) is actor

    def test_missing_actor_is_forbidden(self):
        with pytest.raises(ForbiddenError) as exc:
            AUTHENTICATED.for_action("submit applications").check(None)
        assert "Authentication is required to submit applications" in str(exc.value)

    def test_officials_exclude_citizens(self, citizen, officer, admin):
        guard = OFFICIALS.for_action("verify documents")
        assert guard.allows(officer)
        assert guard.allows(admin)
        with pytest.raises(ForbiddenError) as exc:
            guard.check(citizen)
        assert "land officers or administrators can verify documents" in str(exc.value)

    def test_admin_only(self, officer, admin):
        guard = ADMIN_ONLY.for_action("assign disputes")
        assert guard.allows(admin)
        assert not guard.allows(officer)


# =============================================================================
# Ownership guards
# =============================================================================


class TestOwnershipGuards:
    def test_owner_only_allows_owner(self, citizen):
        assert OWNER_ONLY.allows(citizen, ["citizen-1"])

    def test_owner_only_rejects_officials(self, officer):
        with pytest.raises(ForbiddenError) as exc:
            OWNER_ONLY.for_action("upload documents").check(officer, ["citizen-1"])
        assert "Only the owner can upload documents" in str(exc.value)

    def test_owner_or_official(self, citizen, officer):
        other = Actor(actor_id="citizen-2", role=Role.CITIZEN)
        assert OWNER_OR_OFFICIAL.allows(citizen, ["citizen-1"])
        assert OWNER_OR_OFFICIAL.allows(officer, ["citizen-1"])
        assert not OWNER_OR_OFFICIAL.allows(other, ["citizen-1"])

    def test_owner_ids_may_contain_blanks(self, citizen):
        assert OWNER_ONLY.allows(citizen, [None, "", "citizen-1"])


class TestNoSelfApproval:
    def test_official_can_act_on_others(self, officer):
        assert OFFICIALS_NOT_OWNER.allows(officer, ["citizen-1"])

    def test_officer_cannot_act_on_own(self, officer):
        with pytest.raises(ForbiddenError) as exc:
            OFFICIALS_NOT_OWNER.for_action("approve applications").check(officer, ["officer-1"])
        assert "own application" in str(exc.value)

    def test_admin_cannot_act_on_own(self, admin):
        assert not OFFICIALS_NOT_OWNER.allows(admin, ["admin-1"])

    def test_citizen_fails_role_first(self, citizen):
        with pytest.raises(ForbiddenError) as exc:
            OFFICIALS_NOT_OWNER.for_action("approve applications").check(citizen, ["someone"])
        assert "land officers or administrators" in str(exc.value)
