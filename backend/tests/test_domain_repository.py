import pytest
from sqlalchemy import select

from _helpers import make_report
from dmarc_store.errors import NotFoundError, SoftError, ValidationError
from dmarc_store.models import UserDomain
from dmarc_store.schemas.domain import DomainData


def test_save_inserts_then_updates(uow):
    created = uow.domains.save(DomainData(fqdn="Example.COM", active=True, description="main"))
    assert created.id is not None
    assert created.fqdn == "example.com"
    assert created.created_time == created.updated_time

    updated = uow.domains.save(DomainData(fqdn="example.com", active=False, description="paused"))
    assert updated.id == created.id
    assert updated.active is False
    assert updated.description == "paused"
    assert uow.domains.count() == 1


def test_fetch_by_id_name_and_data(uow):
    created = uow.domains.save(DomainData(fqdn="example.com", active=True))
    assert uow.domains.fetch(created.id).fqdn == "example.com"
    assert uow.domains.fetch("EXAMPLE.com").id == created.id
    assert uow.domains.exists(DomainData(fqdn="example.com"))
    with pytest.raises(NotFoundError, match="Domain not found"):
        uow.domains.fetch("missing.example")
    with pytest.raises(ValidationError):
        uow.domains.fetch("   ")


def test_delete_refuses_domain_with_reports(uow):
    uow.reports.save(make_report(external_id="one"))
    with pytest.raises(SoftError, match="there is 1 incoming report for this domain"):
        uow.domains.delete("example.com")

    uow.reports.save(make_report(external_id="two"))
    with pytest.raises(SoftError, match="there are 2 incoming reports for this domain"):
        uow.domains.delete("example.com")
    assert uow.domains.exists("example.com")


def test_delete_removes_domain_and_assignments(uow):
    uow.domains.save(DomainData(fqdn="example.com", active=True))
    uow.domains.assign_to_user("example.com", 3)
    uow.domains.delete("example.com")

    assert not uow.domains.exists("example.com")
    assert uow.session.execute(select(UserDomain)).first() is None
    with pytest.raises(NotFoundError):
        uow.domains.delete("example.com")


def test_listing_is_sorted_and_scoped(uow):
    for name in ("c.example", "a.example", "b.example"):
        uow.domains.save(DomainData(fqdn=name, active=True))
    uow.domains.assign_to_user("c.example", 7)
    uow.domains.assign_to_user("a.example", 7)

    assert uow.domains.names() == ["a.example", "b.example", "c.example"]
    assert uow.domains.names(user_id=7) == ["a.example", "c.example"]
    assert [d.fqdn for d in uow.domains.list(user_id=7)] == ["a.example", "c.example"]
    assert uow.domains.count(user_id=7) == 2
    assert uow.domains.count(user_id=8) == 0


def test_assignment_rules(uow):
    uow.domains.save(DomainData(fqdn="example.com", active=True))
    with pytest.raises(SoftError, match="admin user"):
        uow.domains.assign_to_user("example.com", 0)
    with pytest.raises(NotFoundError):
        uow.domains.assign_to_user("missing.example", 2)

    uow.domains.assign_to_user("example.com", 2)
    uow.domains.assign_to_user("example.com", 2)
    assert uow.domains.is_assigned_to("example.com", 2)
    assert uow.domains.is_assigned_to("example.com", 0)
    assert not uow.domains.is_assigned_to("example.com", 4)

    uow.domains.unassign_from_user("example.com", 2)
    assert not uow.domains.is_assigned_to("example.com", 2)


def test_replace_user_assignments(uow):
    for name in ("a.example", "b.example", "c.example"):
        uow.domains.save(DomainData(fqdn=name, active=True))
    uow.domains.replace_user_assignments(["a.example", "b.example"], 9)
    uow.domains.replace_user_assignments(["b.example", "c.example"], 9)
    assert uow.domains.names(user_id=9) == ["b.example", "c.example"]

    with pytest.raises(ValidationError, match="Unknown domain"):
        uow.domains.replace_user_assignments(["a.example", "nope.example"], 9)
    assert uow.domains.names(user_id=9) == ["b.example", "c.example"]


def test_count_stops_at_maximum(uow):
    for name in ("a.example", "b.example", "c.example"):
        uow.domains.save(DomainData(fqdn=name, active=True))
    assert uow.domains.count() == 3
    assert uow.domains.count(maximum=2) == 2
