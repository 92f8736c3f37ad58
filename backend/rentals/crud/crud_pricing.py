from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..services.errors import OrderPersistenceError, PricingRulesError, RentalsError
from ..services.pricing import PricingRules

logger = logging.getLogger(__name__)


def get_pricing_rules_record(db: Session) -> Optional[models.PricingRulesRecord]:
    return db.query(models.PricingRulesRecord).order_by(models.PricingRulesRecord.id).first()


def get_pricing_rules(db: Session) -> PricingRules:
    """Load the configured rules, failing loudly when none are set up."""
    record = get_pricing_rules_record(db)
    if record is None:
        raise PricingRulesError("Pricing rules are not configured", {"pricing_rules": "missing"})
    return PricingRules.from_record(record, tax_rate=settings.TAX_RATE)


def update_pricing_rules(db: Session, rules_in: schemas.PricingRulesUpdate) -> models.PricingRulesRecord:
    """Create the singleton row on first save; otherwise patch the provided fields."""
    record = get_pricing_rules_record(db)
    data: Dict[str, Any] = rules_in.model_dump(exclude_unset=True)
    if "zone_overrides" in data and data["zone_overrides"] is not None:
        data["zone_overrides"] = [dict(z) for z in data["zone_overrides"]]
    if record is None:
        missing = [
            name
            for name in schemas.PricingRulesBase.model_fields
            if schemas.PricingRulesBase.model_fields[name].is_required() and data.get(name) is None
        ]
        if missing:
            raise RentalsError(
                "Initial pricing rules must set every required field",
                {name: "missing" for name in missing},
            )
        record = models.PricingRulesRecord()
    for key, value in data.items():
        if value is not None:
            setattr(record, key, value)
    # Validate before persisting so bad values never reach the table
    PricingRules.from_record(record)
    try:
        db.add(record)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Failed to save pricing rules: %s", exc, exc_info=True)
        raise OrderPersistenceError("Pricing rules could not be saved", {"pricing_rules": "save_failed"})
    db.refresh(record)
    return record


def get_admin_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    row = db.query(models.AdminSetting).filter(models.AdminSetting.key == key).first()
    return row.value if row and row.value is not None else default


def set_admin_setting(db: Session, key: str, value: Optional[str]) -> models.AdminSetting:
    row = db.query(models.AdminSetting).filter(models.AdminSetting.key == key).first()
    if row is None:
        row = models.AdminSetting(key=key)
    row.value = value
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
