"""Tests for membership history and tier resolution."""

from datetime import timedelta

import pytest

from edumart.core.errors import InvalidAmount, InvalidTier, NoActiveMembership, UserNotFound
from edumart.models import MembershipTier
from edumart.services import membership_service

from .conftest import NOW


class TestCurrentTier:
    """Tests for read-time tier resolution."""

    def test_user_without_grants_has_no_tier(self, session, make_user) -> None:
        user = make_user()
        status = membership_service.get_current_membership(session, user_id=user.id, now=NOW)
        assert status.tier == MembershipTier.NONE
        assert status.grant_id is None

    def test_timed_tier_lapses_after_expiry(self, session, make_user) -> None:
        """A single-semester tier stops resolving once its expiry passes."""
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="single", duration_days=30, now=NOW)

        assert membership_service.current_tier(session, user.id, now=NOW + timedelta(days=29)) == MembershipTier.SINGLE
        assert membership_service.current_tier(session, user.id, now=NOW + timedelta(days=31)) == MembershipTier.NONE

    def test_newer_grant_supersedes_older(self, session, make_user) -> None:
        """Tiers never stack: the latest grant wins even when it is lower."""
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="double", duration_days=365, now=NOW)
        membership_service.grant_membership(
            session, user_id=user.id, tier="single", duration_days=30, now=NOW + timedelta(days=1)
        )

        assert membership_service.current_tier(session, user.id, now=NOW + timedelta(days=2)) == MembershipTier.SINGLE

    def test_expired_newer_grant_falls_back_to_older_valid_one(self, session, make_user) -> None:
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="points", now=NOW)
        membership_service.grant_membership(
            session, user_id=user.id, tier="double", duration_days=10, now=NOW + timedelta(days=1)
        )

        assert membership_service.current_tier(session, user.id, now=NOW + timedelta(days=20)) == MembershipTier.POINTS

    def test_full_tier_resolves_past_expiry(self, session, make_user) -> None:
        """Full tiers are a one-time unlock and keep resolving after expiry."""
        user = make_user()
        membership_service.grant_membership(
            session, user_id=user.id, tier=MembershipTier.PRIMARY_FULL, duration_days=30, now=NOW
        )

        status = membership_service.get_current_membership(session, user_id=user.id, now=NOW + timedelta(days=400))

        assert status.tier == MembershipTier.PRIMARY_FULL
        assert status.past_expiry is True

    def test_none_grant_revokes(self, session, make_user) -> None:
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="junior_full", now=NOW)
        grant = membership_service.grant_membership(
            session, user_id=user.id, tier="none", duration_days=30, now=NOW + timedelta(hours=1)
        )

        assert grant.expiry_at is None
        assert membership_service.current_tier(session, user.id, now=NOW + timedelta(days=1)) == MembershipTier.NONE


class TestGrantMembership:
    def test_rejects_unknown_tier(self, session, make_user) -> None:
        user = make_user()
        with pytest.raises(InvalidTier):
            membership_service.grant_membership(session, user_id=user.id, tier="platinum", now=NOW)

    def test_rejects_non_positive_duration(self, session, make_user) -> None:
        user = make_user()
        with pytest.raises(InvalidAmount):
            membership_service.grant_membership(session, user_id=user.id, tier="single", duration_days=0, now=NOW)

    def test_unknown_user(self, session) -> None:
        with pytest.raises(UserNotFound):
            membership_service.grant_membership(session, user_id=12345, tier="single", now=NOW)


class TestExtendMembership:
    """Tests for extending the current tier."""

    def test_extends_from_current_expiry(self, session, make_user) -> None:
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="double", duration_days=30, now=NOW)

        extended = membership_service.extend_membership(
            session, user_id=user.id, additional_days=10, now=NOW + timedelta(days=5)
        )

        assert extended.tier == MembershipTier.DOUBLE
        assert extended.expiry_at == NOW + timedelta(days=40)
        assert extended.start_at == NOW

    def test_extends_lapsed_full_tier_from_now(self, session, make_user) -> None:
        user = make_user()
        membership_service.grant_membership(session, user_id=user.id, tier="primary_full", duration_days=30, now=NOW)
        later = NOW + timedelta(days=100)

        extended = membership_service.extend_membership(session, user_id=user.id, additional_days=30, now=later)

        assert extended.expiry_at == later + timedelta(days=30)

    def test_perpetual_membership_is_unchanged(self, session, make_user) -> None:
        user = make_user()
        grant = membership_service.grant_membership(session, user_id=user.id, tier="points", now=NOW)

        result = membership_service.extend_membership(session, user_id=user.id, additional_days=30, now=NOW)

        assert result.id == grant.id
        assert len(membership_service.list_memberships(session, user_id=user.id, now=NOW)) == 1

    def test_user_without_membership_cannot_extend(self, session, make_user) -> None:
        user = make_user()
        with pytest.raises(NoActiveMembership):
            membership_service.extend_membership(session, user_id=user.id, additional_days=30, now=NOW)


class TestListMemberships:
    def test_history_flags_active_and_current_rows(self, session, make_user) -> None:
        user = make_user()
        old = membership_service.grant_membership(session, user_id=user.id, tier="single", duration_days=5, now=NOW)
        new = membership_service.grant_membership(
            session, user_id=user.id, tier="points", now=NOW + timedelta(days=1)
        )

        history = membership_service.list_memberships(session, user_id=user.id, now=NOW + timedelta(days=10))

        assert [entry.grant_id for entry in history] == [new.id, old.id]
        assert [entry.is_active for entry in history] == [True, False]
        assert [entry.is_current for entry in history] == [True, False]
