"""
Monthly bill generation.

For a target month, every ACTIVE tenancy whose lease started on or before the
last day of that month gets exactly one Bill per (tenant, month, admin).
Tenants are processed one at a time; a failure for one tenant is recorded in
the statistics and never stops the rest of the batch.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Bill
from ..utils.months import due_date_for, month_end, month_token, normalize_month
from .clock import SystemClock
from .stores import BillStore, TenancyStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class GenerationStatistics:
    month: str
    admin_id: Optional[int] = None
    total_tenants: int = 0
    bills_generated: int = 0
    bills_skipped: int = 0
    errors: int = 0
    error_details: List[dict] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def record_error(self, tenancy, error):
        self.errors += 1
        self.error_details.append({
            "tenant_id": tenancy.tenant_id,
            "tenant_name": tenancy.name,
            "tenant_email": tenancy.email,
            "error": str(error),
        })

    def to_dict(self):
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class BillGenerationService:

    def __init__(self, tenancies=None, bills=None, clock=None,
                 due_months_after=1, due_day=1):
        self.tenancies = tenancies or TenancyStore()
        self.bills = bills or BillStore()
        self.clock = clock or SystemClock()
        self.due_months_after = due_months_after
        self.due_day = due_day

    @classmethod
    def from_app(cls, app=None, clock=None):
        app = app or current_app
        return cls(
            clock=clock,
            due_months_after=app.config.get("BILL_DUE_MONTHS_AFTER", 1),
            due_day=app.config.get("BILL_DUE_DAY", 1),
        )

    def resolve_month(self, target_month=None):
        if target_month is None:
            return month_token(self.clock.now())
        return normalize_month(target_month)

    def generate(self, target_month=None, admin_id=None):
        month = self.resolve_month(target_month)
        stats = GenerationStatistics(month=month, admin_id=admin_id, started_at=self.clock.now())

        tenancies = self.tenancies.find_active_tenancies(month_end(month), admin_id)
        stats.total_tenants = len(tenancies)
        logger.info("Generating bills for %s (admin=%s): %d eligible tenants",
                    month, admin_id if admin_id is not None else "all", stats.total_tenants)

        for tenancy in tenancies:
            try:
                created = self._generate_for_tenant(tenancy, month)
            except Exception as e:
                db.session.rollback()
                logger.warning("Bill generation failed for tenant %s (%s): %s",
                               tenancy.tenant_id, tenancy.email, e)
                stats.record_error(tenancy, e)
                continue
            if created:
                stats.bills_generated += 1
            else:
                stats.bills_skipped += 1

        stats.finished_at = self.clock.now()
        logger.info("Bill generation for %s finished: generated=%d skipped=%d errors=%d",
                    month, stats.bills_generated, stats.bills_skipped, stats.errors)
        return stats

    def _generate_for_tenant(self, tenancy, month):
        """Insert the tenant's bill for ``month``; False when it already exists."""
        if self.bills.find_one(tenancy.tenant_id, month, tenancy.admin_id):
            logger.debug("Bill already exists for tenant %s, %s", tenancy.tenant_id, month)
            return False

        bill = self.build_bill(tenancy, month)
        try:
            self.bills.insert(bill)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # Lost the race against another writer for the same tenant/month.
            if self.bills.find_one(tenancy.tenant_id, month, tenancy.admin_id):
                return False
            raise
        return True

    def build_bill(self, tenancy, month):
        if tenancy.property_id is None:
            raise ValidationError("Tenant has no property assigned")
        if tenancy.property_admin_id != tenancy.admin_id:
            raise ValidationError("Tenant and property belong to different admins")

        rent = tenancy.rent_amount if tenancy.rent_amount is not None else tenancy.property_monthly_rent
        rent = Decimal(rent if rent is not None else ZERO)
        charges = Decimal(tenancy.charges_amount or ZERO)
        if rent <= ZERO:
            raise ValidationError(f"Invalid rent amount: {rent}")
        if charges < ZERO:
            raise ValidationError(f"Invalid charges amount: {charges}")

        return Bill(
            tenant_id=tenancy.tenant_id,
            property_id=tenancy.property_id,
            admin_id=tenancy.admin_id,
            month=month,
            rent_amount=rent,
            charges=charges,
            total_amount=rent + charges,
            due_date=due_date_for(month, self.due_months_after, self.due_day),
            bill_date=self.clock.today(),
            status=Bill.PENDING,
            description="Monthly rent payment",
        )

    def get_generation_stats(self, month, admin_id=None):
        """Read-only comparison of existing bills against eligible tenancies."""
        month = normalize_month(month)
        tenancies = self.tenancies.find_active_tenancies(month_end(month), admin_id)
        billed = self.bills.billed_tenant_ids(month, admin_id)
        by_status = self.bills.count_by_status(month, admin_id)
        missing = [t for t in tenancies if (t.tenant_id, t.admin_id) not in billed]
        return {
            "month": month,
            "admin_id": admin_id,
            "eligible_tenants": len(tenancies),
            "existing_bills": sum(by_status.values()),
            "missing_bills": len(missing),
            "bills_by_status": by_status,
        }
