"""User ORM model: the identity collaborator's view of a person."""

from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from encore.models import Base, BaseModel


class UserRole(str, Enum):
    """Roles relevant to the finance subsystem."""

    MEMBER = "member"
    ORGANIZER = "organizer"
    FINANCE_MANAGER = "finance_manager"
    ADMIN = "admin"


class User(Base, BaseModel):
    """
    Identity record supplied by the auth collaborator.

    The finance core trusts these rows and never re-validates them; it only
    needs a display name, an email and the role used to route notifications
    to the finance team.
    """

    __tablename__ = "users"

    full_name: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Full name (first and last name combined)"
    )
    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, comment="Contact email"
    )
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=UserRole.MEMBER.value,
        index=True,
        comment="member/organizer/finance_manager/admin",
    )

    __table_args__ = (Index("idx_user_email", "email", unique=True),)

    @property
    def is_finance_staff(self) -> bool:
        return self.role in (UserRole.FINANCE_MANAGER.value, UserRole.ADMIN.value)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, full_name={self.full_name}, role={self.role})>"


__all__ = ["User", "UserRole"]
