from typing import Optional

from pydantic import BaseModel


class CheckoutSessionRead(BaseModel):
    order_id: int
    session_id: str
    url: Optional[str] = None
    amount_cents: int


class PaymentStatusRead(BaseModel):
    order_id: int
    status: str
    payment_state: str
    order_status: str
