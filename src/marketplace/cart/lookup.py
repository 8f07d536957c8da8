"""Cart lookup by owner: a registered customer or a guest session."""

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart


def find_cart(customer_id=None, session_id=None) -> ShoppingCart | None:
    if not customer_id and not session_id:
        raise ValidationError({"customer_id": ["A customer or guest session is required"]})

    repo = current_domain.repository_for(ShoppingCart)
    if customer_id:
        return repo.find_by_customer(customer_id)
    return repo.find_by_session(session_id)


def get_cart(customer_id=None, session_id=None) -> ShoppingCart:
    """Return the owner's cart, creating an empty one on first access."""
    cart = find_cart(customer_id, session_id)
    if cart is None:
        cart = ShoppingCart.create(customer_id=customer_id, session_id=session_id)
        current_domain.repository_for(ShoppingCart).add(cart)
    return cart
