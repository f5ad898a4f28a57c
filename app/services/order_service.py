import logging

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.models.order import Order
from app.utils.time import utcnow


logger = logging.getLogger(__name__)


def create_order(db: Session, payload) -> Order:
    """
    Append an order and roll it into the customer's totals.

    The customer update is a single UPDATE statement (spent += amount,
    visits += 1, last_visit = now) so concurrent orders never lose an increment.
    """
    exists = db.query(Customer.id).filter(Customer.id == payload.customer_id).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Customer not found")

    now = utcnow()

    order = Order(
        customer_id=payload.customer_id,
        amount=payload.amount,
        status=payload.status,
    )
    db.add(order)

    db.query(Customer).filter(Customer.id == payload.customer_id).update(
        {
            Customer.total_spent: func.coalesce(Customer.total_spent, 0) + payload.amount,
            Customer.visit_count: func.coalesce(Customer.visit_count, 0) + 1,
            Customer.last_visit: now,
        },
        synchronize_session=False,
    )

    db.commit()
    db.refresh(order)

    logger.info(
        "order recorded",
        extra={"order_id": str(order.id), "customer_id": str(order.customer_id), "amount": str(order.amount)},
    )
    return order
