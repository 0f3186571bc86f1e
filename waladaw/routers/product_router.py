from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from .. import messaging, storage
from ..auth import get_current_user
from ..crud import products as crud
from ..database import get_db
from ..models import ProductCategory, User
from ..schemas import ProductOut

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/", response_model=List[ProductOut])
def View_Products(
    q: Optional[str] = Query(None, description="**Search** in name and description", examples=[""]),
    category: Optional[ProductCategory] = Query(None, description="**Category** filter"),
    db: Session = Depends(get_db)
):
    if (q and q.strip()) or category:
        return crud.search_products(db, text=q, category=category)
    return crud.list_available(db)


@router.get("/categories", response_model=List[str])
def View_Categories():
    return [c.value for c in ProductCategory]


@router.get("/mine", response_model=List[ProductOut])
def View_My_Products(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return crud.list_by_owner(db, current_user.id)


@router.get("/{product_id}", response_model=ProductOut)
def View_Product(product_id: int, db: Session = Depends(get_db)):
    return crud.get_product_detail(db, product_id)


@router.post("/", response_model=ProductOut, status_code=201)
def Create_Product(
    name: str = Form(..., max_length=200, description="**Product name** (required)", examples=[""]),
    description: str = Form(..., max_length=1000, description="**Description** (required)", examples=[""]),
    price: str = Form(..., description="**Price** (> 0, e.g. 12.50 or 12,50)", examples=[""]),
    category: ProductCategory = Form(..., description="**Category**"),
    image: Optional[UploadFile] = File(None, description="**Picture** (optional)"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    image_path = storage.save(image, storage.PRODUCTS_FOLDER) if storage.has_upload(image) else None
    try:
        product = crud.create_product(db, current_user, name, description, price, category, image=image_path)
    except Exception:
        storage.delete(image_path)
        raise

    messaging.notify(
        messaging.PRODUCT_CREATED,
        {
            "product_id": product.id,
            "name": product.name,
            "price": str(product.price),
            "category": product.category.value,
            "owner_id": product.owner_id,
        },
    )
    return product


@router.put("/{product_id}", response_model=ProductOut)
def Update_Product(
    product_id: int,
    name: str = Form(..., max_length=200, description="**Product name**", examples=[""]),
    description: str = Form(..., max_length=1000, description="**Description**", examples=[""]),
    price: str = Form(..., description="**Price** (> 0)", examples=[""]),
    category: ProductCategory = Form(..., description="**Category**"),
    image: Optional[UploadFile] = File(None, description="**New picture** (optional, keeps the current one otherwise)"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    image_path = storage.save(image, storage.PRODUCTS_FOLDER) if storage.has_upload(image) else None
    try:
        product, replaced = crud.update_product(
            db, product_id, current_user, name, description, price, category, image=image_path
        )
    except Exception:
        storage.delete(image_path)
        raise

    storage.delete(replaced)
    return product


@router.delete("/{product_id}", response_model=ProductOut)
def Delete_Product(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return crud.delete_product(db, product_id, current_user)
