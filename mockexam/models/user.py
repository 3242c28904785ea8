# mockexam/models/user.py
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from mockexam.db.base import Base


class Role:
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    CENTER_ADMIN = "CENTER_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


STAFF_ROLES = (Role.TEACHER, Role.CENTER_ADMIN, Role.SUPER_ADMIN)
# roles whose visibility is limited to their own center
CENTER_SCOPED_ROLES = (Role.TEACHER, Role.CENTER_ADMIN)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False)
    center_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
