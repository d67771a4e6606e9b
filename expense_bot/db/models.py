from __future__ import annotations
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Column, Integer, String, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class User(Base):
    """Пользователь, хоть раз писавший боту. Нужен для рассылки отчётов."""
    __tablename__ = "users"
    id = Column(BigInteger, primary_key=True)  # telegram user_id
    username = Column(String(64), nullable=True)
    chat_id = Column(BigInteger, nullable=True)
    first_seen = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    last_seen  = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    subcategories = relationship("SubCategory", back_populates="category", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("name", name="uq_category_name"),
    )

class SubCategory(Base):
    __tablename__ = "subcategories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    category = relationship("Category", back_populates="subcategories")
    tags = relationship("Tag", back_populates="subcategory", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_subcategory_category_name"),
        Index("ix_subcategory_category", "category_id"),
    )

class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="CASCADE"), nullable=False)

    subcategory = relationship("SubCategory", back_populates="tags")

    __table_args__ = (
        UniqueConstraint("subcategory_id", "name", name="uq_tag_subcategory_name"),
        Index("ix_tag_subcategory", "subcategory_id"),
    )

class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="CASCADE"), nullable=False)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Decimal
    description = Column(String(512), nullable=False)
    notes = Column(String(1024), nullable=True)
    performed_by = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    subcategory = relationship("SubCategory")
    tag = relationship("Tag")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("ix_expense_date", "date"),
        Index("ix_expense_subcategory", "subcategory_id"),
        Index("ix_expense_tag", "tag_id"),
    )

class Budget(Base):
    """Месячный бюджет подкатегории. Создаётся импортом из Excel."""
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    subcategory = relationship("SubCategory")

    __table_args__ = (
        CheckConstraint("month between 1 and 12", name="ck_budget_month"),
        UniqueConstraint("subcategory_id", "year", "month", name="uq_budget_subcategory_year_month"),
        Index("ix_budget_year_month", "year", "month"),
    )
