from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..crud import crud_order
from ..services.cart import Cart, CartRepository
from .dependencies import get_carts, get_db

router = APIRouter(tags=["cart"])


def _cart_read(session_id: str, cart: Cart) -> schemas.CartRead:
    return schemas.CartRead(
        session_id=session_id,
        items=[schemas.CartLineRead.model_validate(line) for line in cart.lines],
        total_units=cart.total_units,
        subtotal_cents=sum(line.unit_price_cents * line.qty for line in cart.lines),
    )


@router.get("/cart/{session_id}", response_model=schemas.CartRead)
def read_cart(session_id: str, carts: CartRepository = Depends(get_carts)):
    return _cart_read(session_id, carts.load(session_id))


@router.put("/cart/{session_id}", response_model=schemas.CartRead)
def replace_cart(
    session_id: str,
    body: schemas.CartUpdate,
    db: Session = Depends(get_db),
    carts: CartRepository = Depends(get_carts),
):
    """Replace the session cart; prices come from the catalog."""
    cart = Cart()
    for item in crud_order.build_cart_items(db, body.items):
        cart.add(item.unit_id, item.unit_name, item.price_cents, item.mode, item.qty)
    carts.save(session_id, cart)
    return _cart_read(session_id, cart)


@router.delete("/cart/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_cart(session_id: str, carts: CartRepository = Depends(get_carts)):
    carts.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
