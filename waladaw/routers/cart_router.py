from fastapi import APIRouter, Depends, Form
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..crud import cart as crud
from ..database import get_db
from ..models import User
from ..schemas import CartItemOut, CartOut, CartSummary

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=CartOut)
def View_Cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items = crud.get_cart_items(db, current_user.id)
    return CartOut(
        items=[CartItemOut.model_validate(item) for item in items],
        total=crud.cart_total(db, current_user.id),
        count=len(items),
    )


@router.get("/summary", response_model=CartSummary)
def View_Cart_Summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return CartSummary(
        count=crud.cart_count(db, current_user.id),
        total=crud.cart_total(db, current_user.id),
    )


@router.post("/items", response_model=CartItemOut, status_code=201)
def Add_To_Cart(
    product_id: int = Form(..., gt=0, description="**Product to add**", examples=[""]),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return crud.add_to_cart(db, current_user, product_id)


@router.delete("/items/{item_id}", status_code=204)
def Remove_From_Cart(
    item_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    crud.remove_from_cart(db, current_user, item_id)


@router.delete("/", status_code=200)
def Clear_Cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    removed = crud.clear_cart(db, current_user)
    return {"removed": removed}
