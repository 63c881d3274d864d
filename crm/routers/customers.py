import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, require_admin
from crm.db.deps import get_session
from crm.db.models import User
from crm.db.repositories.users import CustomersRepository, UsersRepository
from crm.schemas.common import envelope, page_count
from crm.schemas.customers import CustomerCreateRequest, CustomerResponse, CustomerUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customers", tags=["customers"])

DEFAULT_CUSTOMER_STATUS = "Active"


def _serialize_customer(customer: User) -> CustomerResponse:
    return CustomerResponse(
        id=customer.id,
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        location=customer.location,
        company=customer.company,
        notes=customer.notes,
        status=customer.status,
        totalSpent=customer.total_spent,
        orders=customer.orders,
        visits=customer.visits,
        createdBy=customer.created_by,
        createdAt=customer.created_at,
        updatedAt=customer.updated_at,
    )


def _get_customer(repo: CustomersRepository, customer_id: str) -> User:
    customer = repo.get(customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


@router.get("")
def list_customers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
):
    customers, total = CustomersRepository(session).list(
        admin.user_id,
        search=search.strip() if search else None,
        status=status_filter or None,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return envelope(
        [_serialize_customer(c) for c in customers],
        pagination={"page": page, "limit": limit, "total": total, "pages": page_count(total, limit)},
    )


@router.get("/stats/overview")
def customer_stats(_admin: AuthContext = Depends(require_admin), session: Session = Depends(get_session)):
    return envelope(CustomersRepository(session).stats())


@router.get("/{customer_id}")
def get_customer(
    customer_id: str,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
):
    customer = _get_customer(CustomersRepository(session), customer_id)
    return envelope(_serialize_customer(customer))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreateRequest,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
):
    if UsersRepository(session).get_by_email(payload.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Customer with this email already exists",
        )
    customer = CustomersRepository(session).create(
        admin_id=admin.user_id,
        name=payload.name.strip(),
        email=payload.email,
        phone=payload.phone,
        location=payload.location,
        company=payload.company,
        notes=payload.notes,
        status=payload.status or DEFAULT_CUSTOMER_STATUS,
        total_spent=payload.totalSpent,
        orders=payload.orders,
        # Visits are not tracked separately; they mirror the order count.
        visits=payload.orders,
    )
    logger.info("Customer created", extra={"customer_id": customer.id, "admin_id": admin.user_id})
    return envelope(_serialize_customer(customer), message="Customer created successfully")


@router.put("/{customer_id}")
def update_customer(
    customer_id: str,
    payload: CustomerUpdateRequest,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
):
    repo = CustomersRepository(session)
    customer = _get_customer(repo, customer_id)

    fields = {}
    if payload.email is not None and payload.email.lower() != customer.email:
        existing = UsersRepository(session).get_by_email(payload.email)
        if existing and existing.id != customer.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Customer with this email already exists",
            )
        fields["email"] = payload.email.lower()
    for key in ("name", "phone", "location", "company", "notes", "status"):
        value = getattr(payload, key)
        if value:
            fields[key] = value
    if payload.totalSpent is not None:
        fields["total_spent"] = payload.totalSpent
    if payload.orders is not None:
        fields["orders"] = payload.orders
        fields["visits"] = payload.orders

    customer = repo.update(customer, **fields)
    return envelope(_serialize_customer(customer), message="Customer updated successfully")


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: str,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
):
    repo = CustomersRepository(session)
    customer = _get_customer(repo, customer_id)
    repo.delete(customer)
    logger.info("Customer deleted", extra={"customer_id": customer_id, "admin_id": admin.user_id})
    return envelope(message="Customer deleted successfully")
