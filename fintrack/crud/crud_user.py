from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from uuid import uuid4
from datetime import datetime

from fintrack.db.core import UserDB, NotFoundError
from fintrack.models.user import UserCreate


# ===== DATABASE OPERATIONS =====

def create_db_user(db: Session, user_data: UserCreate) -> UserDB:
    """Create a new user in the database"""

    existing_user = db.query(UserDB).filter(UserDB.email == user_data.email).first()
    if existing_user:
        raise ValueError("Email already registered")

    existing_username = db.query(UserDB).filter(UserDB.username == user_data.username).first()
    if existing_username:
        raise ValueError("Username already taken")

    db_user = UserDB(
        id=uuid4(),
        email=user_data.email,
        username=user_data.username,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        return db_user
    except IntegrityError:
        db.rollback()
        raise ValueError("User creation failed due to database constraint")


def read_db_user(db: Session, user_id: int) -> Optional[UserDB]:
    return db.query(UserDB).filter(UserDB.db_id == user_id).first()


def get_user_or_raise(db: Session, user_id: int) -> UserDB:
    user = read_db_user(db, user_id)
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")
    return user
