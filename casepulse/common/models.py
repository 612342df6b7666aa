from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

DEFAULT_HEADLESS = True
DEFAULT_TIMEOUT_MS = 180_000
DEFAULT_SELLER_CENTRAL_URL = "https://sellercentral.amazon.com/home"


class Base(DeclarativeBase):
    pass


class Marketplace(str, enum.Enum):
    US = "US"
    CANADA = "Canada"
    MEXICO = "Mexico"


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("account_name", name="uq_accounts_account_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    # Encrypted bundles; only loaded when a caller undefers them.
    password: Mapped[str] = mapped_column(Text, nullable=False, deferred=True)
    two_fa_key: Mapped[str] = mapped_column(Text, nullable=False, deferred=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    brands: Mapped[list["Brand"]] = relationship(back_populates="account", lazy="raise")

    def __repr__(self) -> str:
        return f"Account(id={self.id!r}, account_name={self.account_name!r})"


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    brand_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    marketplace: Mapped[Marketplace] = mapped_column(
        Enum(Marketplace, name="marketplace", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=Marketplace.US,
    )
    cookies: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cookies_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    account: Mapped[Account] = relationship(back_populates="brands", lazy="raise")

    def __repr__(self) -> str:
        return f"Brand(id={self.id!r}, brand_name={self.brand_name!r}, account_id={self.account_id!r})"


class AutomationConfig(Base):
    """Singleton row holding the browser automation settings."""

    __tablename__ = "automation_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    headless: Mapped[bool] = mapped_column(Boolean, nullable=False, default=DEFAULT_HEADLESS)
    timeout_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_TIMEOUT_MS)
    seller_central_url: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_SELLER_CENTRAL_URL
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
