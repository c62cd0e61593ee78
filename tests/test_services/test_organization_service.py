"""
Tests for organization_service: organizations, members and work sites.
"""

from datetime import date

import pytest

from app.errors import NotFoundError, ValidationError
from app.models.notification import Notification
from app.models.organization import Department, Employee, OrganizationMember
from app.models.service_record import ServiceRecord
from app.services import organization_service


@pytest.fixture
def owner(make_user):
    user, _ = make_user("MANAGER")
    return user


@pytest.fixture
def org(owner):
    return organization_service.create_organization(
        {"name": "Pho Corner", "industry_type": "RESTAURANT", "phone": "0123"}, owner.id
    )


class TestOrganizations:
    def test_creator_becomes_admin_member(self, org, owner):
        member = OrganizationMember.query.filter_by(organization_id=org.id).one()
        assert member.user_id == owner.id
        assert member.role == "ADMIN"
        assert org.phone == "0123"
        assert org.subscription_plan == "FREE"

    def test_invalid_industry(self, owner):
        with pytest.raises(ValidationError, match="Invalid industry type"):
            organization_service.create_organization(
                {"name": "X", "industry_type": "ALCHEMY"}, owner.id
            )

    def test_name_required(self, owner):
        with pytest.raises(ValidationError, match="required"):
            organization_service.create_organization({"industry_type": "HOTEL"}, owner.id)

    def test_listing_includes_counts(self, org, db_session):
        db_session.add(Department(name="Kitchen", type="OFFICE", organization_id=org.id))
        db_session.add(
            Employee(name="Minh", email="minh@example.com", role="Cook",
                     level="WORKER", organization_id=org.id)
        )
        db_session.commit()

        items, total = organization_service.get_organizations()
        assert total == 1
        assert items[0]["employee_count"] == 1
        assert items[0]["department_count"] == 1
        assert items[0]["service_count"] == 0

    def test_listing_filters(self, org, owner):
        organization_service.create_organization(
            {"name": "Lotus Hotel", "industry_type": "HOTEL"}, owner.id
        )
        assert organization_service.get_organizations(industry_type="HOTEL")[1] == 1
        items, _ = organization_service.get_organizations(search="pho")
        assert [item["name"] for item in items] == ["Pho Corner"]

    def test_detail_statistics(self, org, db_session):
        for amount, status in ((100, "COMPLETED"), (300, "COMPLETED"), (200, "PENDING")):
            db_session.add(
                ServiceRecord(
                    title="Order", industry_type="RESTAURANT", customer_name="C",
                    amount=amount, status=status, date=date(2024, 5, 1),
                    organization_id=org.id,
                )
            )
        db_session.commit()

        stats = organization_service.get_organization_detail(org.id)["statistics"]
        assert stats["total_services"] == 3
        assert stats["completed_services"] == 2
        assert stats["total_revenue"] == pytest.approx(400.0)
        assert stats["avg_service_amount"] == pytest.approx(200.0)

    def test_update_keeps_absent_fields(self, org, owner):
        updated = organization_service.update_organization(
            org.id, {"description": "Noodles", "name": None}, owner.id
        )
        assert updated.description == "Noodles"
        assert updated.name == "Pho Corner"

    def test_soft_delete_hides_organization(self, org, owner):
        organization_service.delete_organization(org.id, owner.id)
        assert organization_service.get_organizations()[1] == 0
        with pytest.raises(NotFoundError, match="Organization not found"):
            organization_service.get_organization_detail(org.id)


class TestMembers:
    def test_add_member_sends_welcome(self, org, make_user, owner):
        user, _ = make_user()
        member = organization_service.add_member(org.id, user.id, "USER", owner.id)

        assert member.is_active is True
        assert organization_service.is_member(org.id, user.id)
        welcome = Notification.query.filter_by(user_id=user.id).one()
        assert welcome.type == "welcome"
        assert welcome.title == "Welcome to Pho Corner"

    def test_duplicate_member(self, org, owner):
        with pytest.raises(ValidationError, match="already a member"):
            organization_service.add_member(org.id, owner.id)

    def test_unknown_user(self, org):
        with pytest.raises(NotFoundError, match="User not found"):
            organization_service.add_member(org.id, 999)

    def test_remove_and_re_add(self, org, make_user, owner):
        user, _ = make_user()
        organization_service.add_member(org.id, user.id)
        organization_service.remove_member(org.id, user.id, owner.id)
        assert not organization_service.is_member(org.id, user.id)
        assert len(organization_service.get_members(org.id)) == 1

        member = organization_service.add_member(org.id, user.id, "MANAGER")
        assert member.role == "MANAGER"
        assert OrganizationMember.query.filter_by(user_id=user.id).count() == 1

    def test_remove_non_member(self, org):
        with pytest.raises(NotFoundError, match="Member not found"):
            organization_service.remove_member(org.id, 999, None)


class TestWorkSites:
    def test_create_and_list(self, org, owner):
        organization_service.create_work_site(org.id, {"name": "Main", "type": "OFFICE"}, owner.id)
        organization_service.create_work_site(org.id, {"name": "Annex", "type": "SITE"}, owner.id)
        names = [site.name for site in organization_service.get_work_sites(org.id)]
        assert names == ["Annex", "Main"]

    def test_invalid_type(self, org, owner):
        with pytest.raises(ValidationError, match="Invalid work site type"):
            organization_service.create_work_site(org.id, {"name": "X", "type": "MOON"}, owner.id)

    def test_director_must_belong_to_organization(self, org, owner):
        with pytest.raises(NotFoundError, match="Director not found"):
            organization_service.create_work_site(
                org.id, {"name": "X", "type": "OFFICE", "director_id": 42}, owner.id
            )

    def test_deactivate(self, org, owner):
        site = organization_service.create_work_site(
            org.id, {"name": "Main", "type": "FACTORY"}, owner.id
        )
        organization_service.deactivate_work_site(site.id, owner.id)
        assert organization_service.get_work_sites(org.id) == []
        assert len(organization_service.get_work_sites(org.id, include_inactive=True)) == 1
        with pytest.raises(NotFoundError):
            organization_service.deactivate_work_site(site.id, owner.id)
