"""Role-based permissions."""

from __future__ import annotations

from typing import FrozenSet, NamedTuple

from pipapal.db.models import UserRole

HOUSEHOLD = UserRole.HOUSEHOLD.value
COLLECTOR = UserRole.COLLECTOR.value
RECYCLER = UserRole.RECYCLER.value
ORGANIZATION = UserRole.ORGANIZATION.value


class Permission(NamedTuple):
    name: str
    roles: FrozenSet[str]


def _perm(name: str, *roles: str) -> Permission:
    return Permission(name, frozenset(roles))


class Permissions:
    # Pickup requests
    REQUEST_PICKUP = _perm("request_pickup", HOUSEHOLD, ORGANIZATION)

    # Collectors
    ACCEPT_PICKUP_JOBS = _perm("accept_pickup_jobs", COLLECTOR)
    MARK_JOB_COMPLETE = _perm("mark_job_complete", COLLECTOR)
    LIST_MATERIALS = _perm("list_materials", COLLECTOR)

    VIEW_PICKUP_HISTORY = _perm("view_pickup_history", HOUSEHOLD, COLLECTOR, RECYCLER, ORGANIZATION)

    # Recyclers
    VIEW_WASTE_LISTINGS = _perm("view_waste_listings", RECYCLER)
    BUY_RECYCLABLES = _perm("buy_recyclables", RECYCLER)
    VIEW_MARKETPLACE = _perm("view_marketplace", RECYCLER, COLLECTOR)


# PUBLIC_INTERFACE
def has_permission(role: str, permission: Permission) -> bool:
    return role in permission.roles
