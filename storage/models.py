import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class OrderRecord(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_oco_link", "oco_linked_order_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(100), nullable=False)  # venue-assigned
    client_order_id = Column(String(100), nullable=True)

    user_id = Column(String(100), nullable=False)
    exchange_slug = Column(String(50), nullable=False)
    base_coin_id = Column(String(100), nullable=True)
    quote_coin_id = Column(String(100), nullable=True)
    symbol = Column(String(30), nullable=False)

    side = Column(String(10), nullable=False)
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="NEW")
    is_manual = Column(Boolean, default=False)
    is_algorithmic_trade = Column(Boolean, default=False)

    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=True)
    executed_quantity = Column(Float, default=0.0)
    average_price = Column(Float, nullable=True)
    cost = Column(Float, default=0.0)
    fee = Column(Float, default=0.0)
    fee_currency = Column(String(20), nullable=True)
    estimated_fee = Column(Float, nullable=True)
    estimated_slippage = Column(Float, nullable=True)

    stop_price = Column(Float, nullable=True)
    trailing_amount = Column(Float, nullable=True)
    trailing_type = Column(String(20), nullable=True)
    take_profit_price = Column(Float, nullable=True)
    stop_loss_price = Column(Float, nullable=True)
    time_in_force = Column(String(10), nullable=True)

    oco_linked_order_id = Column(String(36), nullable=True)

    transact_time = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<OrderRecord {self.id} {self.side} {self.type} {self.quantity} {self.symbol} {self.status}>"


class IncidentRecord(Base):
    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, default=new_id)
    incident_type = Column(String(50), nullable=False)
    user_id = Column(String(100), nullable=True)
    symbol = Column(String(30), nullable=True)
    order_id = Column(String(250), nullable=True)
    severity = Column(String(20), nullable=False)
    description = Column(String(500), nullable=False)
    incident_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
