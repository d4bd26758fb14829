"""
Actor scoping helpers.

WHY: Every settlement operation runs on behalf of an actor whose identity and
shop scope come from an upstream auth layer. These helpers turn that context
into hard checks so no service ever touches another business's or shop's data.

SECURITY INVARIANTS:
1. A shop is visible only if it belongs to actor.business_id AND is in
   actor.shop_ids (shop_ids=None means every shop of the business).
2. Out-of-scope entities are reported as NOT FOUND, never as forbidden, so
   probing cannot reveal which ids exist.
3. Role checks raise PermissionDenied.

USAGE:
    shop = require_shop_scope(actor, purchase.shop_id)
    require_role(actor, ADMIN_ROLES)
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import NotFoundError, PermissionDenied
from ..models import Shop, Customer, Purchase


ROLE_BUSINESS_ADMIN = "BUSINESS_ADMIN"
ROLE_SHOP_ADMIN = "SHOP_ADMIN"
ROLE_SALES_STAFF = "SALES_STAFF"
ROLE_DEBT_COLLECTOR = "DEBT_COLLECTOR"

VALID_ROLES = {ROLE_BUSINESS_ADMIN, ROLE_SHOP_ADMIN, ROLE_SALES_STAFF, ROLE_DEBT_COLLECTOR}
ADMIN_ROLES = {ROLE_BUSINESS_ADMIN, ROLE_SHOP_ADMIN}
SELLING_ROLES = {ROLE_BUSINESS_ADMIN, ROLE_SHOP_ADMIN, ROLE_SALES_STAFF}
COLLECTING_ROLES = VALID_ROLES


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting, and where.

    user_id comes from the external identity provider. staff_id links the
    actor to a StaffMember row (names on documents, collector attribution).
    """
    user_id: int
    business_id: int
    role: str
    shop_ids: tuple[int, ...] | None = None
    staff_id: int | None = None

    @property
    def is_business_wide(self) -> bool:
        return self.shop_ids is None

    def can_see_shop(self, shop_id: int) -> bool:
        return self.shop_ids is None or shop_id in self.shop_ids


def require_role(actor: ActorContext, roles) -> None:
    if actor.role not in roles:
        raise PermissionDenied(
            f"Role {actor.role} may not perform this action",
            details={"role": actor.role, "allowed_roles": sorted(roles)},
        )


def require_shop_scope(actor: ActorContext, shop_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if shop is None or shop.business_id != actor.business_id or not actor.can_see_shop(shop_id):
        raise NotFoundError(f"Shop {shop_id} not found", details={"shop_id": shop_id})
    return shop


def scoped_shop_ids(actor: ActorContext) -> list[int]:
    """Concrete shop ids visible to the actor."""
    q = db.session.query(Shop.id).filter(Shop.business_id == actor.business_id)
    if actor.shop_ids is not None:
        q = q.filter(Shop.id.in_(actor.shop_ids))
    return [row[0] for row in q.all()]


def get_customer_in_scope(actor: ActorContext, customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    try:
        require_shop_scope(actor, customer.shop_id)
    except NotFoundError:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def get_purchase_in_scope(actor: ActorContext, purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    try:
        require_shop_scope(actor, purchase.shop_id)
    except NotFoundError:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase
