from .pricing import (
    ZoneOverride,
    PricingRulesBase,
    PricingRulesUpdate,
    PricingRulesRead,
    CartItemIn,
    EventDetails,
    PricingOverrides,
    QuoteRequest,
    PriceBreakdownRead,
)
from .summary import SummaryLineRead, FieldChangeRead, OrderSummaryRead, QuoteResponse
from .order import (
    CustomerIn,
    AddressIn,
    AddressRead,
    OrderCreate,
    OrderItemRead,
    OrderRead,
    DiscountCreate,
    DiscountRead,
    CustomFeeCreate,
    CustomFeeRead,
    OrderReprice,
    StatusChange,
    ApprovalDecision,
    ConflictRead,
    AvailabilityRead,
)
from .cart import CartLineIn, CartUpdate, CartLineRead, CartRead
from .payment import CheckoutSessionRead, PaymentStatusRead
