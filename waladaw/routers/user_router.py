from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import storage
from ..auth import create_access_token, get_current_user
from ..crud import users as crud
from ..database import get_db
from ..emailer import send_welcome_email
from ..errors import invalid_data
from ..models import User
from ..schemas import Token, UserCreate, UserOut

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=UserOut, status_code=201)
def register(
    email: str = Form(..., description="**Valid email address**", examples=[""]),
    password: str = Form(..., min_length=4, description="**Password (minimum 4 characters)**", examples=[""]),
    first_name: str = Form(..., description="**First name**", examples=[""]),
    last_name: str = Form(..., description="**Last name**", examples=[""]),
    db: Session = Depends(get_db)
):
    # bcrypt only looks at the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        raise invalid_data("Password is too long. Use at most 72 bytes.")

    try:
        data = UserCreate(email=email, password=password, first_name=first_name.strip(), last_name=last_name.strip())
    except ValidationError as e:
        raise invalid_data(e.errors()[0]["msg"])

    new_user = crud.create_user(db, data)
    send_welcome_email(new_user.email, new_user.first_name)
    return UserOut.model_validate(new_user)


@router.post("/login", response_model=Token)
def login(
    email: str = Form(..., description="**Email you registered with**", examples=[""]),
    password: str = Form(..., description="**Password**", examples=[""]),
    db: Session = Depends(get_db)
):
    user = crud.authenticate(db, email, password)
    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserOut)
def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserOut)
def update_profile(
    first_name: str = Form(..., description="**First name**", examples=[""]),
    last_name: str = Form(..., description="**Last name**", examples=[""]),
    avatar: Optional[UploadFile] = File(None, description="**New avatar** (optional)"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    previous = current_user.avatar
    new_avatar = storage.save(avatar, storage.AVATARS_FOLDER) if storage.has_upload(avatar) else None
    try:
        user = crud.update_profile(db, current_user, first_name, last_name, avatar=new_avatar)
    except Exception:
        storage.delete(new_avatar)
        raise
    if new_avatar:
        storage.delete(previous)
    return UserOut.model_validate(user)


@router.delete("/me/avatar", response_model=UserOut)
def delete_avatar(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    previous = crud.clear_avatar(db, current_user)
    storage.delete(previous)
    return UserOut.model_validate(current_user)


@router.patch("/change-password", response_model=UserOut)
def change_password(
    current_password: str = Form(..., description="**Current password** (required for verification)", examples=[""]),
    new_password: str = Form(..., description="**New password** (minimum 4 characters)", examples=[""]),
    confirm_password: str = Form(..., description="**Repeat the new password**", examples=[""]),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = crud.change_password(db, current_user, current_password, new_password, confirm_password)
    return UserOut.model_validate(user)
