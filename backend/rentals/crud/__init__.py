from . import crud_order
from . import crud_pricing
from .crud_pricing import get_pricing_rules, update_pricing_rules, get_admin_setting, set_admin_setting
from .crud_order import (
    create_order,
    get_order,
    load_order_bundle,
    add_discount,
    remove_discount,
    add_custom_fee,
    remove_custom_fee,
    log_change,
    reprice_order,
    change_status,
    approve_order,
    reject_order,
)
