# achievement_api/models/user.py
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table
from sqlalchemy.orm import relationship

from achievement_api.core.database import Base
from achievement_api.utils.dates import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin")

    def __repr__(self):
        return f"<Role {self.name}>"


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, unique=True)  # "resource:action"
    resource = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    description = Column(String, nullable=True)

    def __repr__(self):
        return f"<Permission {self.name}>"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    role = relationship("Role", lazy="selectin")

    def __repr__(self):
        return f"<User {self.username}>"


class AdvisorProfile(Base):
    __tablename__ = "advisors"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    lecturer_number = Column(String(20), nullable=True, unique=True)
    department = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", lazy="selectin")


class StudentProfile(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    student_number = Column(String(20), nullable=False, unique=True)
    program = Column(String(100), nullable=True)
    year = Column(String(10), nullable=True)
    advisor_id = Column(String(36), ForeignKey("advisors.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<StudentProfile {self.student_number}>"
