"""Customer group service"""

import logging

from sqlalchemy.orm import Session

from ...models import PartnerCustomerGroup
from ..affiliate.scope import PartnerApiError, PartnerContext
from .repository import CustomerGroupRepository
from .schemas import CustomerGroupCreate, CustomerGroupResponse, CustomerGroupUpdate

logger = logging.getLogger(__name__)


def parse_group_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise PartnerApiError("Invalid group id", 400) from e


class CustomerGroupService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerGroupRepository()

    def _to_response(self, group: PartnerCustomerGroup, lead_count: int) -> CustomerGroupResponse:
        response = CustomerGroupResponse.model_validate(group)
        response.lead_count = lead_count
        return response

    def _get(self, ctx: PartnerContext, raw_id: str) -> PartnerCustomerGroup:
        group = self.repo.get_group(self.db, ctx, parse_group_id(raw_id))
        if not group:
            raise PartnerApiError("Group not found", 404)
        return group

    def list_groups(self, ctx: PartnerContext) -> list[CustomerGroupResponse]:
        groups = self.repo.list_groups(self.db, ctx)
        counts = self.repo.lead_counts(self.db, ctx, [g.id for g in groups])
        return [self._to_response(g, counts.get(g.id, 0)) for g in groups]

    def get_group(self, ctx: PartnerContext, raw_id: str) -> CustomerGroupResponse:
        group = self._get(ctx, raw_id)
        counts = self.repo.lead_counts(self.db, ctx, [group.id])
        return self._to_response(group, counts.get(group.id, 0))

    def create_group(self, ctx: PartnerContext, data: CustomerGroupCreate) -> CustomerGroupResponse:
        name = (data.name or "").strip()
        if not name:
            raise PartnerApiError("Group name is required", 400)

        payload = data.model_dump()
        payload["name"] = name
        group = self.repo.create(self.db, profile_id=ctx.profile.id, **payload)
        self.db.commit()
        self.db.refresh(group)
        logger.info(f"✅ Customer group {group.id} created by profile {ctx.profile.id}")
        return self._to_response(group, 0)

    def update_group(self, ctx: PartnerContext, raw_id: str, data: CustomerGroupUpdate) -> CustomerGroupResponse:
        group = self._get(ctx, raw_id)
        updates = data.model_dump(exclude_unset=True)

        if "name" in updates:
            name = (updates["name"] or "").strip()
            if not name:
                raise PartnerApiError("Group name is required", 400)
            updates["name"] = name

        for key, value in updates.items():
            setattr(group, key, value)
        self.db.commit()
        self.db.refresh(group)
        return self.get_group(ctx, str(group.id))

    def delete_group(self, ctx: PartnerContext, raw_id: str) -> dict:
        group = self._get(ctx, raw_id)
        leads = self.repo.scoped_leads_in_group(self.db, ctx, group.id)
        for lead in leads:
            lead.group_id = None
        self.db.flush()
        self.repo.detach_group_references(self.db, group.id)
        self.db.delete(group)
        self.db.commit()
        logger.info(f"🗑️ Customer group {group.id} deleted, {len(leads)} lead(s) detached")
        return {"ok": True, "detached": len(leads)}
