from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from fintrack.crud import crud_category
from fintrack.models import user as user_models
from fintrack.db.core import get_db, NotFoundError

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
)


@router.post("/", response_model=user_models.CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(category: user_models.CategoryCreate, db: Session = Depends(get_db)):
    return crud_category.create_db_category(db=db, category_data=category)


@router.get("/", response_model=List[user_models.CategoryResponse])
def read_categories(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return crud_category.read_db_categories(db=db, skip=skip, limit=limit)


@router.get("/{category_id}", response_model=user_models.CategoryResponse)
def read_category(category_id: int, db: Session = Depends(get_db)):
    db_category = crud_category.read_db_category(db=db, category_id=category_id)
    if db_category is None:
        raise NotFoundError(f"Category with id {category_id} not found")
    return db_category
