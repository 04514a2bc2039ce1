from sqlalchemy import Column, String, Boolean, DateTime
import uuid
from datetime import datetime
from db import Base

ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"
ROLE_MAJOR_ADMIN = "major_admin"
ROLES = (ROLE_SELLER, ROLE_ADMIN, ROLE_MAJOR_ADMIN)


def generate_user_id():
    return str(uuid.uuid4())


# =================================
#  Users Table
# =================================
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True, default=generate_user_id)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_SELLER, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime, nullable=True)  # Written at most once per activity window
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User id={self.id} email={self.email} role={self.role}>"
