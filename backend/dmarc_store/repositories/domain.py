from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Union

import structlog
from sqlalchemy import delete, func, select

from dmarc_store.errors import NotFoundError, SoftError, ValidationError
from dmarc_store.models import Domain, UserDomain
from dmarc_store.schemas.domain import DomainData
from dmarc_store.utils.clock import utcnow

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

DomainRef = Union[DomainData, int, str]


class DomainRepository:
    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    # ---------------------------------------------------------------------------
    # Lookups
    # ---------------------------------------------------------------------------

    @staticmethod
    def _condition(domain: DomainRef):
        if isinstance(domain, DomainData):
            if domain.id is not None:
                return Domain.id == domain.id
            return Domain.fqdn == domain.fqdn
        if isinstance(domain, int) and not isinstance(domain, bool):
            return Domain.id == domain
        if isinstance(domain, str) and domain.strip():
            return Domain.fqdn == domain.strip().lower()
        raise ValidationError("Incorrect domain reference")

    def _get(self, domain: DomainRef) -> Optional[Domain]:
        return self.uow.session.execute(
            select(Domain).where(self._condition(domain))
        ).scalar_one_or_none()

    def find(self, domain: DomainRef) -> Optional[DomainData]:
        with self.uow.guard("Failed to fetch the domain data"):
            row = self._get(domain)
            return DomainData.model_validate(row) if row is not None else None

    def exists(self, domain: DomainRef) -> bool:
        return self.find(domain) is not None

    def fetch(self, domain: DomainRef) -> DomainData:
        found = self.find(domain)
        if found is None:
            raise NotFoundError("Domain not found")
        return found

    def resolve_id(self, fqdn: str) -> Optional[int]:
        found = self.find(fqdn)
        return found.id if found is not None else None

    # ---------------------------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------------------------

    def save(self, domain: DomainData) -> DomainData:
        """Update active/description of an existing domain or insert a new one."""
        now = utcnow()
        with self.uow.transaction("Failed to save the domain data") as db:
            row = self._get(domain)
            if row is not None:
                row.active = domain.active
                row.description = domain.description
                row.updated_time = now
                logger.info("domain.updated", fqdn=row.fqdn, active=row.active)
            else:
                row = Domain(
                    fqdn=domain.fqdn,
                    active=domain.active,
                    description=domain.description,
                    created_time=now,
                    updated_time=now,
                )
                db.add(row)
                logger.info("domain.created", fqdn=row.fqdn, active=row.active)
            db.flush()
            return DomainData.model_validate(row)

    def delete(self, domain: DomainRef) -> None:
        with self.uow.transaction("Failed to delete the domain") as db:
            row = self._get(domain)
            if row is None:
                raise NotFoundError("Domain not found")
            fqdn = row.fqdn
            r_count = self.uow.mapper("report").count({"domain": row.id})
            if r_count > 0:
                if r_count == 1:
                    verb, suffix = "is", ""
                else:
                    verb, suffix = "are", "s"
                raise SoftError(
                    f"Failed to delete: there {verb} {r_count} incoming report{suffix} for this domain"
                )
            db.execute(delete(UserDomain).where(UserDomain.domain_id == row.id))
            db.execute(delete(Domain).where(Domain.id == row.id))
        logger.info("domain.deleted", fqdn=fqdn)

    # ---------------------------------------------------------------------------
    # Listing (scoped to a user's assignments unless user_id is 0)
    # ---------------------------------------------------------------------------

    @staticmethod
    def _scoped(stmt, user_id: int):
        if user_id:
            stmt = stmt.join(
                UserDomain, (UserDomain.domain_id == Domain.id) & (UserDomain.user_id == user_id)
            )
        return stmt

    def list(self, user_id: int = 0) -> List[DomainData]:
        stmt = self._scoped(select(Domain), user_id).order_by(Domain.fqdn)
        with self.uow.guard("Failed to get the domain list") as db:
            return [DomainData.model_validate(row) for row in db.execute(stmt).scalars()]

    def names(self, user_id: int = 0) -> List[str]:
        stmt = self._scoped(select(Domain.fqdn), user_id).order_by(Domain.fqdn)
        with self.uow.guard("Failed to get a list of domain names") as db:
            return list(db.execute(stmt).scalars())

    def count(self, user_id: int = 0, maximum: int = 0) -> int:
        """Number of domains; counting stops at ``maximum`` when it is set."""
        stmt = self._scoped(select(Domain.id), user_id)
        if maximum > 0:
            stmt = stmt.limit(maximum)
        stmt = select(func.count()).select_from(stmt.subquery())
        with self.uow.guard("Failed to get the number of domains") as db:
            return int(db.execute(stmt).scalar_one())

    # ---------------------------------------------------------------------------
    # User assignments
    # ---------------------------------------------------------------------------

    def is_assigned_to(self, domain: DomainRef, user_id: int) -> bool:
        if user_id == 0:
            return self.exists(domain)
        stmt = (
            select(func.count())
            .select_from(UserDomain)
            .join(Domain, Domain.id == UserDomain.domain_id)
            .where(self._condition(domain), UserDomain.user_id == user_id)
        )
        with self.uow.guard("Failed to check the domain assignment") as db:
            return db.execute(stmt).scalar_one() > 0

    @staticmethod
    def _check_user(user_id: int) -> None:
        if user_id == 0:
            raise SoftError("Domains cannot be assigned to the admin user")
        if user_id < 0:
            raise ValidationError("Incorrect user identifier")

    def assign_to_user(self, domain: DomainRef, user_id: int) -> None:
        self._check_user(user_id)
        with self.uow.transaction("Failed to assign the domain") as db:
            row = self._get(domain)
            if row is None:
                raise NotFoundError("Domain not found")
            exists = db.execute(
                select(UserDomain).where(UserDomain.domain_id == row.id, UserDomain.user_id == user_id)
            ).scalar_one_or_none()
            if exists is None:
                db.add(UserDomain(domain_id=row.id, user_id=user_id))
                db.flush()

    def unassign_from_user(self, domain: DomainRef, user_id: int) -> None:
        self._check_user(user_id)
        with self.uow.transaction("Failed to unassign the domain") as db:
            row = self._get(domain)
            if row is None:
                raise NotFoundError("Domain not found")
            db.execute(
                delete(UserDomain).where(UserDomain.domain_id == row.id, UserDomain.user_id == user_id)
            )

    def replace_user_assignments(self, domains: Iterable[DomainRef], user_id: int) -> None:
        """Make ``domains`` the complete set of domains assigned to the user."""
        self._check_user(user_id)
        with self.uow.transaction("Failed to update the user's domains") as db:
            wanted = set()
            for ref in domains:
                row = self._get(ref)
                if row is None:
                    raise ValidationError(f"Unknown domain: {ref}")
                wanted.add(row.id)
            current = set(
                db.execute(select(UserDomain.domain_id).where(UserDomain.user_id == user_id)).scalars()
            )
            stale = current - wanted
            if stale:
                db.execute(
                    delete(UserDomain).where(
                        UserDomain.user_id == user_id, UserDomain.domain_id.in_(sorted(stale))
                    )
                )
            for domain_id in sorted(wanted - current):
                db.add(UserDomain(domain_id=domain_id, user_id=user_id))
            db.flush()
        logger.info(
            "domain.assignments_replaced",
            user_id=user_id,
            added=len(wanted - current),
            removed=len(stale),
        )
