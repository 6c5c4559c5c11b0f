from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List

from fintrack.db.core import CategoryDB
from fintrack.models.user import CategoryCreate


def create_db_category(db: Session, category_data: CategoryCreate) -> CategoryDB:
    existing = db.query(CategoryDB).filter(CategoryDB.name.ilike(category_data.name)).first()
    if existing:
        raise ValueError(f"Category '{category_data.name}' already exists")

    db_category = CategoryDB(name=category_data.name)
    try:
        db.add(db_category)
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ValueError("Category creation failed due to database constraint")


def read_db_category(db: Session, category_id: int) -> Optional[CategoryDB]:
    return db.query(CategoryDB).filter(CategoryDB.id == category_id).first()


def read_db_categories(db: Session, skip: int = 0, limit: int = 100) -> List[CategoryDB]:
    return db.query(CategoryDB).order_by(CategoryDB.name).offset(skip).limit(limit).all()
