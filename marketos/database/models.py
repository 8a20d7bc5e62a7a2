"""
Database Models - Normalized Marketplace Store

Every marketplace integration is translated into one internal schema:

Ownership:
- User: owner of integrations and notification targets
- Integration: one connection between a user and a marketplace account
- Product: catalog entry, unique per (integration, sku)

Time series (owned by Product, append-only, optional external id):
- Sale, Fee, AdStat, SeoSnapshot

Materialized rollups (recomputed and upserted on every sync):
- DailyKPI: one row per (integration, date)
- ProductAnalytics: one row per (product, date)

Alerts reference an integration and, weakly, a product.
"""

from datetime import datetime
import datetime as dt
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from marketos.utils import utcnow


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class Marketplace(str, Enum):
    """Supported marketplaces"""
    WB = "WB"
    OZON = "OZON"
    YANDEX_MARKET = "YANDEX_MARKET"


class FeeType(str, Enum):
    """Marketplace fee categories"""
    COMMISSION = "COMMISSION"
    LOGISTICS = "LOGISTICS"
    STORAGE = "STORAGE"
    ADVERTISING = "ADVERTISING"
    PENALTY = "PENALTY"
    OTHER = "OTHER"


class AlertType(str, Enum):
    """Alert categories"""
    DEAD_STOCK = "DEAD_STOCK"
    LOW_ROAS = "LOW_ROAS"
    HIGH_STORAGE_COST = "HIGH_STORAGE_COST"
    CAMPAIGN_CONFLICT = "CAMPAIGN_CONFLICT"
    SEO_DROP = "SEO_DROP"
    OTHER = "OTHER"


class AlertSeverity(str, Enum):
    """Alert severity levels"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertSource(str, Enum):
    """Where an alert came from"""
    RULE = "rule"
    MARKETPLACE = "marketplace"


# =============================================================================
# OWNERSHIP TABLES
# =============================================================================

class User(Base):
    """Seller account owning integrations"""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    integrations: Mapped[List["Integration"]] = relationship(back_populates="user", passive_deletes=True)
    telegram_users: Mapped[List["TelegramUser"]] = relationship(back_populates="user", passive_deletes=True)


class TelegramUser(Base):
    """Telegram chat receiving a user's alerts and reports"""
    __tablename__ = "telegram_users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    user: Mapped["User"] = relationship(back_populates="telegram_users")

    __table_args__ = (
        UniqueConstraint("user_id", "chat_id", name="uq_telegram_users_user_chat"),
    )


class Integration(Base):
    """
    Marketplace Integration

    One configured connection between a user and a marketplace account.
    The marketplace is stored as text so that a value without a registered
    adapter can exist and be rejected when an adapter is constructed.
    """
    __tablename__ = "integrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    marketplace: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    credentials: Mapped[dict] = mapped_column(JSONType, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Sync bookkeeping
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_sync_status: Mapped[Optional[str]] = mapped_column(String(20))
    last_sync_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    user: Mapped["User"] = relationship(back_populates="integrations")

    __table_args__ = (
        Index("ix_integrations_user_active", "user_id", "is_active"),
    )


class Product(Base):
    """Catalog entry, unique per (integration, sku)"""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(200))
    cost_price: Mapped[float] = mapped_column(Float, default=0)
    price: Mapped[float] = mapped_column(Float, default=0)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    dimensions: Mapped[Optional[dict]] = mapped_column(JSONType)  # {"weight", "length", "width", "height"}

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    integration: Mapped["Integration"] = relationship()

    __table_args__ = (
        UniqueConstraint("integration_id", "sku", name="uq_products_integration_sku"),
        Index("ix_products_category", "category"),
    )


# =============================================================================
# TIME SERIES TABLES
# =============================================================================

class Sale(Base):
    """Sold units of a product on a date"""
    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(200))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    revenue: Mapped[float] = mapped_column(Float, nullable=False)
    refund_qty: Mapped[int] = mapped_column(Integer, default=0)
    refund_amount: Mapped[float] = mapped_column(Float, default=0)

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_sales_external"),
        Index("ix_sales_product_date", "product_id", "date"),
        Index("ix_sales_integration_date", "integration_id", "date"),
    )


class Fee(Base):
    """Marketplace charge against a product"""
    __tablename__ = "fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(200))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    type: Mapped[FeeType] = mapped_column(SQLEnum(FeeType), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column(JSONType)

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_fees_external"),
        Index("ix_fees_product_date", "product_id", "date"),
        Index("ix_fees_type_date", "type", "date"),
    )


class AdStat(Base):
    """Daily advertising statistics for a product"""
    __tablename__ = "ad_stats"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(200))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    campaign: Mapped[Optional[str]] = mapped_column(String(300))
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    spend: Mapped[float] = mapped_column(Float, default=0)
    orders: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[float] = mapped_column(Float, default=0)

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_ad_stats_external"),
        Index("ix_ad_stats_product_date", "product_id", "date"),
    )


class SeoSnapshot(Base):
    """Search position of a product for one query on a date"""
    __tablename__ = "seo_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(200))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    query: Mapped[str] = mapped_column(String(300), nullable=False)
    position: Mapped[Optional[int]] = mapped_column(Integer)
    conversion: Mapped[Optional[float]] = mapped_column(Float)
    ctr: Mapped[Optional[float]] = mapped_column(Float)

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_seo_snapshots_external"),
        Index("ix_seo_snapshots_product_query_date", "product_id", "query", "date"),
    )


# =============================================================================
# ROLLUP TABLES
# =============================================================================

class DailyKPI(Base):
    """Daily KPI rollup per integration"""
    __tablename__ = "daily_kpis"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    orders: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[float] = mapped_column(Float, default=0)
    profit: Mapped[float] = mapped_column(Float, default=0)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    ads_spend: Mapped[float] = mapped_column(Float, default=0)
    fees: Mapped[float] = mapped_column(Float, default=0)
    computed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("integration_id", "date", name="uq_daily_kpis_integration_date"),
    )


class ProductAnalytics(Base):
    """Rolling 30-day product metrics, one row per (product, date)"""
    __tablename__ = "product_analytics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    days_of_cover: Mapped[int] = mapped_column(Integer, default=0)
    sell_through: Mapped[float] = mapped_column(Float, default=0)
    is_dead_stock: Mapped[bool] = mapped_column(Boolean, default=False)
    roas: Mapped[float] = mapped_column(Float, default=0)
    cpa: Mapped[float] = mapped_column(Float, default=0)
    margin: Mapped[float] = mapped_column(Float, default=0)
    computed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("product_id", "date", name="uq_product_analytics_product_date"),
    )


# =============================================================================
# ALERTS
# =============================================================================

class Alert(Base):
    """
    Alert raised by a rule or reported by a marketplace.

    The product reference is weak: deleting a product keeps the alert.
    """
    __tablename__ = "alerts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"))
    type: Mapped[AlertType] = mapped_column(SQLEnum(AlertType), nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(SQLEnum(AlertSeverity), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column(JSONType)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[AlertSource] = mapped_column(SQLEnum(AlertSource), default=AlertSource.RULE)
    fingerprint: Mapped[Optional[str]] = mapped_column(String(300))
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    product: Mapped[Optional["Product"]] = relationship()

    __table_args__ = (
        Index("ix_alerts_integration_resolved", "integration_id", "resolved"),
        Index("ix_alerts_fingerprint", "integration_id", "fingerprint"),
        Index("ix_alerts_created", "created_at"),
    )
