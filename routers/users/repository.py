"""Users repository layer."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import User


def list_users(db: Session, *, role: Optional[str] = None, is_active: Optional[bool] = None) -> List[User]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    return query.order_by(User.created_at.desc()).all()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def create_user(db: Session, *, name: Optional[str], email: str, role: str, is_active: bool) -> User:
    user = User(name=name, email=email, role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_user(db: Session, user: User, **changes) -> User:
    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user: User) -> None:
    db.delete(user)
    db.commit()


def touch_last_login(db: Session, user: User, when: datetime) -> User:
    user.last_login = when
    db.commit()
    db.refresh(user)
    return user


def user_metrics(db: Session, *, now: datetime) -> Dict[str, object]:
    total = db.query(func.count(User.id)).scalar() or 0
    active = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    recent = (
        db.query(func.count(User.id))
        .filter(User.last_login.isnot(None), User.last_login >= now - timedelta(hours=24))
        .scalar()
        or 0
    )
    by_role = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    return {"total_users": total, "active_users": active, "active_last_24h": recent, "users_by_role": by_role}
