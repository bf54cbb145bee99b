"""
Group membership and budgets.

A user belongs to at most one group.  Scheduled actions resolve their
group context (member ids, budget ids, display names) from these tables.
"""

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitledger_kernel.db.base import TrackedBase


class Group(TrackedBase):
    """A household or team sharing expenses."""

    __tablename__ = "groups"

    group_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    members: Mapped[list["Member"]] = relationship(back_populates="group")
    budgets: Mapped[list["GroupBudget"]] = relationship(back_populates="group")


class Member(TrackedBase):
    """A user and the group they belong to."""

    __tablename__ = "members"

    __table_args__ = (
        Index("ix_members_group_id", "group_id"),
    )

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    group_id: Mapped[str | None] = mapped_column(
        String(200),
        ForeignKey("groups.group_id"),
        nullable=True,
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)

    group: Mapped[Group | None] = relationship(back_populates="members")


class GroupBudget(TrackedBase):
    """A named budget owned by a group."""

    __tablename__ = "group_budgets"

    __table_args__ = (
        Index("ix_group_budgets_group_id", "group_id"),
    )

    budget_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    group_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("groups.group_id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    group: Mapped[Group] = relationship(back_populates="budgets")
