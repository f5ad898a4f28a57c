from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.models.customer import Customer
from app.models.order import Order
from app.schemas.customer import CustomerCreate, CustomerOut
from app.schemas.order import OrderOut


router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("", response_model=list[CustomerOut])
def list_customers(
    limit: int = 100,
    offset: int = 0,
    status: str | None = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    q = db.query(Customer)
    if status:
        q = q.filter(Customer.status == status)

    limit = max(1, min(limit, 500))
    offset = max(0, offset)

    return (
        q.order_by(Customer.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.post("", response_model=CustomerOut, status_code=201)
def create_customer(
    payload: CustomerCreate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    email = payload.email.strip().lower()
    exists = db.query(Customer.id).filter(Customer.email == email).first()
    if exists:
        raise HTTPException(status_code=400, detail="A customer with this email already exists")

    data = payload.model_dump()
    data["email"] = email
    customer = Customer(**data)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.get("/{customer_id}/orders", response_model=list[OrderOut])
def list_customer_orders(
    customer_id: UUID,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    exists = db.query(Customer.id).filter(Customer.id == customer_id).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Customer not found")

    return (
        db.query(Order)
        .filter(Order.customer_id == customer_id)
        .order_by(Order.created_at.desc())
        .all()
    )
