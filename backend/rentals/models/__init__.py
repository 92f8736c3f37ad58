from .pricing_rules import PricingRulesRecord
from .admin_setting import AdminSetting
from .unit import Unit
from .customer import Customer, Address
from .order import (
    Order,
    OrderItem,
    OrderStatus,
    LocationType,
    Surface,
    PickupPreference,
    WetOrDry,
)
from .order_adjustment import OrderDiscount, OrderCustomFee
from .order_changelog import OrderChangelog
from .blackout import BlackoutDate

__all__ = [
    "PricingRulesRecord",
    "AdminSetting",
    "Unit",
    "Customer",
    "Address",
    "Order",
    "OrderItem",
    "OrderStatus",
    "LocationType",
    "Surface",
    "PickupPreference",
    "WetOrDry",
    "OrderDiscount",
    "OrderCustomFee",
    "OrderChangelog",
    "BlackoutDate",
]
