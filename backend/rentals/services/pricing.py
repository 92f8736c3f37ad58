"""Order pricing engine.

Single entrypoint :func:`calculate_price` turns a cart plus event details into
a fully itemised :class:`PriceBreakdown`. Every surface that shows money
(quote page, checkout, invoice, customer approval) derives its numbers from a
breakdown produced here, or from the stored copy on the order row, so the
formula lives in exactly one place.

All amounts are integer cents. Fractional values only appear at
multiplication boundaries (per-mile travel, location multipliers, tax) and
are rounded half-up immediately via :func:`round_cents`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence
import logging

from .errors import PricingRulesError

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = Decimal("0.06")

WAIVABLE_FEES = frozenset({"travel", "surface", "same_day", "generator", "tax"})

_REQUIRED_RULE_FIELDS = (
    "base_radius_miles",
    "per_mile_after_base_cents",
    "surface_sandbag_fee_cents",
    "deposit_per_unit_cents",
    "generator_fee_single_cents",
    "generator_fee_multiple_cents",
    "same_day_pickup_fee_cents",
)


def round_cents(value: Any) -> int:
    """Round a cents amount to the nearest whole cent, halves going up."""
    return int(_to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _read_field(source: Any, key: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise PricingRulesError(f"Pricing rule {name} must be true or false", {name: "invalid"})


def _enum_value(value: Any) -> str:
    raw = getattr(value, "value", value)
    return str(raw or "").strip().lower()


def calculate_tax(taxable_cents: int, rate: Any = DEFAULT_TAX_RATE) -> int:
    """Tax on a taxable base, rounded once at the multiplication boundary."""
    if taxable_cents <= 0:
        return 0
    return round_cents(Decimal(int(taxable_cents)) * _to_decimal(rate))


def format_currency(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}${whole:,}.{frac:02d}"


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).split("T")[0])


def count_rental_days(start: Any, end: Any = None) -> int:
    """Inclusive number of calendar days an event spans (at least 1)."""
    start_d = _as_date(start)
    end_d = _as_date(end) or start_d
    if start_d is None:
        return 1
    return max(1, abs((end_d - start_d).days) + 1)


# ─── Rules ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PricingRules:
    base_radius_miles: Decimal
    per_mile_after_base_cents: int
    surface_sandbag_fee_cents: int
    deposit_per_unit_cents: int
    generator_fee_single_cents: int
    generator_fee_multiple_cents: int
    same_day_pickup_fee_cents: int
    included_cities: tuple = ()
    # zip code -> flat travel fee in cents
    zone_overrides: Dict[str, int] = field(default_factory=dict)
    residential_multiplier: Decimal = Decimal("1")
    commercial_multiplier: Decimal = Decimal("1")
    # Surcharge per extra rental day as a percentage of the first day.
    extra_day_pct: Decimal = Decimal("0")
    apply_taxes_by_default: bool = True
    tax_rate: Decimal = DEFAULT_TAX_RATE

    def __post_init__(self) -> None:
        errors: Dict[str, str] = {}
        for name in _REQUIRED_RULE_FIELDS + (
            "residential_multiplier",
            "commercial_multiplier",
            "extra_day_pct",
            "tax_rate",
        ):
            if _to_decimal(getattr(self, name)) < 0:
                errors[name] = "must_be_non_negative"
        for zip_code, cents in self.zone_overrides.items():
            if int(cents) < 0:
                errors[f"zone_overrides.{zip_code}"] = "must_be_non_negative"
        if errors:
            raise PricingRulesError("Pricing rules contain invalid values", errors)

    @classmethod
    def from_record(cls, record: Any, tax_rate: Any = None) -> "PricingRules":
        """Build rules from a ``pricing_rules`` row or an equivalent mapping.

        Missing or non-numeric required fields raise :class:`PricingRulesError`
        listing every offending field.
        """
        if record is None:
            raise PricingRulesError("Pricing rules are not configured", {"pricing_rules": "missing"})

        errors: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for name in _REQUIRED_RULE_FIELDS:
            raw = _read_field(record, name)
            if raw is None or raw == "":
                errors[name] = "missing"
                continue
            try:
                dec = _to_decimal(raw)
            except (InvalidOperation, ValueError, TypeError):
                errors[name] = "not_a_number"
                continue
            values[name] = dec if name == "base_radius_miles" else int(dec)
        if errors:
            raise PricingRulesError("Pricing rules are incomplete", errors)

        cities = _read_field(record, "included_cities")
        if cities is None:
            cities = _read_field(record, "included_city_list_json")
        zones_raw = _read_field(record, "zone_overrides") or []
        zones: Dict[str, int] = {}
        for zone in zones_raw:
            zip_code = str(_read_field(zone, "zip") or "").strip()
            flat = _read_field(zone, "flat_cents")
            if not zip_code or flat is None:
                raise PricingRulesError(
                    "Zone override needs both zip and flat_cents",
                    {"zone_overrides": "malformed"},
                )
            zones[zip_code] = int(flat)

        def _optional(name: str, default: Any) -> Any:
            raw = _read_field(record, name)
            return default if raw is None else raw

        return cls(
            included_cities=tuple(str(c).strip() for c in (cities or []) if str(c).strip()),
            zone_overrides=zones,
            residential_multiplier=_to_decimal(_optional("residential_multiplier", 1)),
            commercial_multiplier=_to_decimal(_optional("commercial_multiplier", 1)),
            extra_day_pct=_to_decimal(_optional("extra_day_pct", 0)),
            apply_taxes_by_default=_to_bool("apply_taxes_by_default", _optional("apply_taxes_by_default", True)),
            tax_rate=_to_decimal(tax_rate if tax_rate is not None else _optional("tax_rate", DEFAULT_TAX_RATE)),
            **values,
        )

    def is_included_city(self, city: str) -> bool:
        target = (city or "").strip().lower()
        return bool(target) and any(c.lower() == target for c in self.included_cities)


# ─── Inputs ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CartItem:
    unit_id: Any
    unit_name: str = ""
    wet_or_dry: str = "dry"
    unit_price_cents: int = 0
    qty: int = 1
    price_dry_cents: Optional[int] = None
    price_water_cents: Optional[int] = None

    def __post_init__(self) -> None:
        if int(self.qty) < 0:
            raise ValueError("qty must be non-negative")
        if int(self.unit_price_cents) < 0:
            raise ValueError("unit_price_cents must be non-negative")

    @property
    def mode(self) -> str:
        return "water" if _enum_value(self.wet_or_dry) == "water" else "dry"

    @property
    def price_cents(self) -> int:
        """Unit price for the selected mode."""
        if self.mode == "water" and self.price_water_cents is not None:
            return int(self.price_water_cents)
        if self.mode == "dry" and self.price_dry_cents is not None:
            return int(self.price_dry_cents)
        return int(self.unit_price_cents)

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * int(self.qty)

    @classmethod
    def from_source(cls, source: Any) -> "CartItem":
        if isinstance(source, CartItem):
            return source
        return cls(
            unit_id=_read_field(source, "unit_id"),
            unit_name=_read_field(source, "unit_name") or "",
            wet_or_dry=_enum_value(_read_field(source, "wet_or_dry") or "dry"),
            unit_price_cents=int(_read_field(source, "unit_price_cents") or 0),
            qty=int(_read_field(source, "qty") if _read_field(source, "qty") is not None else 1),
            price_dry_cents=_read_field(source, "price_dry_cents"),
            price_water_cents=_read_field(source, "price_water_cents"),
        )


@dataclass(frozen=True)
class PriceParams:
    items: Sequence[Any]
    location_type: str = "residential"
    surface: str = "grass"
    can_use_stakes: bool = True
    pickup_preference: str = "next_day"
    num_days: int = 1
    distance_miles: float = 0.0
    city: str = ""
    zip_code: str = ""
    generator_qty: int = 0
    # None follows ``PricingRules.apply_taxes_by_default``
    apply_taxes: Optional[bool] = None
    waived_fees: frozenset = frozenset()
    custom_deposit_cents: Optional[int] = None


# ─── Output ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TravelFee:
    fee_cents: int
    total_miles: float
    chargeable_miles: float
    base_radius_miles: float
    per_mile_cents: int
    is_flat_fee: bool
    is_included_city: bool
    display_name: str


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal_cents: int
    travel_fee_cents: int
    surface_fee_cents: int
    generator_fee_cents: int
    same_day_pickup_fee_cents: int
    tax_cents: int
    total_cents: int
    deposit_due_cents: int
    balance_due_cents: int
    taxable_cents: int = 0
    travel_total_miles: float = 0.0
    travel_base_radius_miles: float = 0.0
    travel_chargeable_miles: float = 0.0
    travel_per_mile_cents: int = 0
    travel_is_flat_fee: bool = False
    travel_fee_display_name: str = "Travel Fee"

    @property
    def fees_cents(self) -> int:
        return (
            self.travel_fee_cents
            + self.surface_fee_cents
            + self.generator_fee_cents
            + self.same_day_pickup_fee_cents
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ─── Calculation ──────────────────────────────────────────────────────────────


def calculate_travel_fee(distance_miles: Any, city: str, zip_code: str, rules: PricingRules) -> TravelFee:
    """Travel fee for an event location.

    Precedence: flat zip-zone override, then included (free) city, then the
    base radius, then per-mile beyond the radius.
    """
    miles = _to_decimal(distance_miles or 0)
    if miles < 0:
        raise ValueError("distance_miles must be non-negative")
    radius = _to_decimal(rules.base_radius_miles)
    zone_fee = rules.zone_overrides.get((zip_code or "").strip())
    included = rules.is_included_city(city)

    fee = 0
    chargeable = Decimal("0")
    flat = False
    display = "Travel Fee"
    if zone_fee is not None:
        fee = int(zone_fee)
        flat = True
        display = f"Travel Fee ({miles:.1f} mi)"
    elif included or miles <= radius:
        fee = 0
    else:
        chargeable = miles - radius
        fee = round_cents(chargeable * rules.per_mile_after_base_cents)
        display = (
            f"Travel Fee ({chargeable:.1f} mi x "
            f"{format_currency(rules.per_mile_after_base_cents)}/mi)"
        )

    return TravelFee(
        fee_cents=fee,
        total_miles=float(miles),
        chargeable_miles=float(chargeable),
        base_radius_miles=float(radius),
        per_mile_cents=int(rules.per_mile_after_base_cents),
        is_flat_fee=flat,
        is_included_city=included,
        display_name=display,
    )


def calculate_generator_fee(generator_qty: int, rules: PricingRules) -> int:
    qty = int(generator_qty or 0)
    if qty <= 0:
        return 0
    return rules.generator_fee_single_cents + (qty - 1) * rules.generator_fee_multiple_cents


def needs_sandbags(surface: Any, can_use_stakes: bool) -> bool:
    return _enum_value(surface) == "concrete" or not can_use_stakes


def is_same_day_pickup(pickup_preference: Any, location_type: Any) -> bool:
    # Commercial sites never allow equipment to stay overnight.
    return _enum_value(pickup_preference) == "same_day" or _enum_value(location_type) == "commercial"


def calculate_deposit(total_cents: int, total_units: int, rules: PricingRules, custom_deposit_cents: Optional[int] = None) -> int:
    if custom_deposit_cents is not None:
        return max(0, min(int(custom_deposit_cents), total_cents))
    return max(0, min(total_units * rules.deposit_per_unit_cents, total_cents))


def _normalize_waivers(waived: Iterable[str]) -> frozenset:
    names = frozenset(_enum_value(w) for w in (waived or ()))
    unknown = names - WAIVABLE_FEES
    if unknown:
        raise ValueError(f"Unknown fee waiver(s): {', '.join(sorted(unknown))}")
    return names


def calculate_price(params: PriceParams, rules: Optional[PricingRules]) -> PriceBreakdown:
    """Price an order in one deterministic pass.

    Raises :class:`PricingRulesError` when ``rules`` is missing or malformed.
    Rental days only affect the subtotal when ``rules.extra_day_pct`` is set;
    with the default of 0 a multi-day rental costs the same as one day.
    """
    if rules is None:
        raise PricingRulesError("Pricing rules are required to price an order", {"pricing_rules": "missing"})
    if not isinstance(rules, PricingRules):
        rules = PricingRules.from_record(rules)

    items = [CartItem.from_source(item) for item in params.items]
    waived = _normalize_waivers(params.waived_fees)

    rental_cents = sum(item.line_total_cents for item in items)
    is_commercial = _enum_value(params.location_type) == "commercial"
    multiplier = rules.commercial_multiplier if is_commercial else rules.residential_multiplier
    subtotal_cents = round_cents(Decimal(rental_cents) * _to_decimal(multiplier))
    extra_days = max(0, int(params.num_days or 1) - 1)
    extra_day_pct = _to_decimal(rules.extra_day_pct)
    if extra_days and extra_day_pct > 0:
        subtotal_cents += round_cents(Decimal(subtotal_cents) * extra_day_pct / 100 * extra_days)

    travel = calculate_travel_fee(params.distance_miles, params.city, params.zip_code, rules)
    travel_fee_cents = 0 if "travel" in waived else travel.fee_cents

    surface_fee_cents = 0
    if needs_sandbags(params.surface, params.can_use_stakes) and "surface" not in waived:
        surface_fee_cents = rules.surface_sandbag_fee_cents

    generator_fee_cents = 0 if "generator" in waived else calculate_generator_fee(params.generator_qty, rules)

    same_day_pickup_fee_cents = 0
    if is_same_day_pickup(params.pickup_preference, params.location_type) and "same_day" not in waived:
        same_day_pickup_fee_cents = rules.same_day_pickup_fee_cents

    taxable_cents = (
        subtotal_cents
        + travel_fee_cents
        + surface_fee_cents
        + generator_fee_cents
        + same_day_pickup_fee_cents
    )
    taxes_apply = rules.apply_taxes_by_default if params.apply_taxes is None else bool(params.apply_taxes)
    tax_cents = 0
    if taxes_apply and "tax" not in waived:
        tax_cents = calculate_tax(taxable_cents, rules.tax_rate)

    total_cents = taxable_cents + tax_cents
    total_units = sum(int(item.qty) for item in items)
    deposit_due_cents = calculate_deposit(total_cents, total_units, rules, params.custom_deposit_cents)

    breakdown = PriceBreakdown(
        subtotal_cents=subtotal_cents,
        travel_fee_cents=travel_fee_cents,
        surface_fee_cents=surface_fee_cents,
        generator_fee_cents=generator_fee_cents,
        same_day_pickup_fee_cents=same_day_pickup_fee_cents,
        tax_cents=tax_cents,
        total_cents=total_cents,
        deposit_due_cents=deposit_due_cents,
        balance_due_cents=total_cents - deposit_due_cents,
        taxable_cents=taxable_cents,
        travel_total_miles=travel.total_miles,
        travel_base_radius_miles=travel.base_radius_miles,
        travel_chargeable_miles=travel.chargeable_miles,
        travel_per_mile_cents=travel.per_mile_cents,
        travel_is_flat_fee=travel.is_flat_fee,
        travel_fee_display_name=travel.display_name,
    )
    logger.debug(
        "Price calculated",
        extra={
            "units": total_units,
            "distance_miles": travel.total_miles,
            "total_cents": total_cents,
        },
    )
    return breakdown
