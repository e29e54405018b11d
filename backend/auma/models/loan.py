"""Loan and MLO rows read by the compliance gate.

Only the columns the gate needs for notification routing are mapped; the
rest of the loan file lives with the loan service.
"""

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from auma.database import Base


class MloUser(Base):
    __tablename__ = "mlo_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    nmls_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ghl_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Loan(Base):
    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    loan_number: Mapped[str | None] = mapped_column(String(40), nullable=True)
    borrower_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    ghl_contact_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_mlo_id: Mapped[str | None] = mapped_column(
        ForeignKey("mlo_users.id"), nullable=True, index=True
    )

    assigned_mlo: Mapped[MloUser | None] = relationship(lazy="selectin")
