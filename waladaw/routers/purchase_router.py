import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import config, messaging
from ..auth import get_current_user
from ..crud import purchases as crud
from ..database import get_db
from ..emailer import send_purchase_confirmation
from ..errors import TechnicalError
from ..models import User
from ..pdf import generate_invoice_pdf, invoice_filename
from ..schemas import PurchaseListResponse, PurchaseOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.post("/", response_model=PurchaseOut, status_code=201)
def Checkout(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    purchase = crud.create_purchase(db, current_user)

    messaging.notify(
        messaging.PURCHASE_CREATED,
        {
            "purchase_id": purchase.id,
            "buyer_id": purchase.buyer_id,
            "total": str(purchase.total),
            "product_ids": [p.id for p in purchase.products],
        },
    )

    if config.EMAIL_ENABLED:
        try:
            pdf = generate_invoice_pdf(purchase)
        except TechnicalError:
            pdf = None
        send_purchase_confirmation(purchase, pdf)

    return purchase


@router.get("/", response_model=PurchaseListResponse)
def View_My_Purchases(
    page: int = Query(1, ge=1, description="**Page** number"),
    page_size: int = Query(10, ge=1, le=100, description="**Page size**"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items, total = crud.list_user_purchases(db, current_user.id, skip=(page - 1) * page_size, limit=page_size)
    return PurchaseListResponse(
        purchases=[PurchaseOut.model_validate(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{purchase_id}", response_model=PurchaseOut)
def View_Purchase(
    purchase_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return crud.get_purchase(db, purchase_id, current_user)


@router.get("/{purchase_id}/invoice")
def Download_Invoice(
    purchase_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    purchase = crud.get_purchase(db, purchase_id, current_user)
    content = generate_invoice_pdf(purchase)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice_filename(purchase.id)}"'},
    )
