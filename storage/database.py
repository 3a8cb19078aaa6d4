from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Collection, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .models import Base, IncidentRecord, OrderRecord, utcnow


class Database:
    def __init__(self, db_url: str = "sqlite+aiosqlite:///orders.db"):
        engine_kwargs = {}
        if ":memory:" in db_url:
            # One shared connection, otherwise every checkout sees an empty database.
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_async_engine(db_url, **engine_kwargs)
        self.SessionLocal = async_sessionmaker(bind=self.engine, expire_on_commit=False)

    async def init_db(self) -> None:
        """Initialize all tables in the database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    def create_session(self) -> AsyncSession:
        """Create a new database session."""
        return self.SessionLocal()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session wrapped in a transaction: commit on clean exit, rollback on any error."""
        async with self.create_session() as session:
            async with session.begin():
                yield session

    # Order operations
    async def add_order(self, session: AsyncSession, order: OrderRecord) -> OrderRecord:
        """Stage an order inside an open transaction and flush so its id is assigned."""
        session.add(order)
        await session.flush()
        return order

    async def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[OrderRecord]:
        """Get an order by ID, optionally restricted to its owner."""
        async with self.create_session() as session:
            stmt = select(OrderRecord).where(OrderRecord.id == order_id)
            if user_id is not None:
                stmt = stmt.where(OrderRecord.user_id == user_id)
            return (await session.execute(stmt)).scalars().first()

    async def update_order_status(
        self,
        order_id: str,
        status: str,
        executed_quantity: Optional[float] = None,
    ) -> Optional[OrderRecord]:
        """Update order status and, when given, the executed quantity."""
        async with self.transaction() as session:
            order = await session.get(OrderRecord, order_id)
            if order:
                order.status = status
                if executed_quantity is not None:
                    order.executed_quantity = min(executed_quantity, order.quantity)
                order.updated_at = utcnow()
            return order

    async def query_orders(
        self,
        user_id: str,
        *,
        statuses: Optional[Collection[str]] = None,
        sides: Optional[Collection[str]] = None,
        types: Optional[Collection[str]] = None,
        is_manual: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[OrderRecord]:
        """Get a user's orders, most recent first."""
        async with self.create_session() as session:
            stmt = select(OrderRecord).where(OrderRecord.user_id == user_id)
            if statuses:
                stmt = stmt.where(OrderRecord.status.in_(list(statuses)))
            if sides:
                stmt = stmt.where(OrderRecord.side.in_(list(sides)))
            if types:
                stmt = stmt.where(OrderRecord.type.in_(list(types)))
            if is_manual is not None:
                stmt = stmt.where(OrderRecord.is_manual.is_(is_manual))
            stmt = stmt.order_by(OrderRecord.created_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            return list((await session.execute(stmt)).scalars().all())

    async def get_filled_orders_for_coin(self, user_id: str, coin_id: str) -> List[OrderRecord]:
        """Get FILLED orders of a user on a base coin, oldest execution first."""
        async with self.create_session() as session:
            stmt = (
                select(OrderRecord)
                .where(
                    OrderRecord.user_id == user_id,
                    OrderRecord.base_coin_id == coin_id,
                    OrderRecord.status == "FILLED",
                )
                .order_by(OrderRecord.transact_time.asc())
            )
            return list((await session.execute(stmt)).scalars().all())

    # Incident operations
    async def create_incident(
        self,
        incident_type: str,
        severity: str,
        description: str,
        user_id: Optional[str] = None,
        symbol: Optional[str] = None,
        order_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> IncidentRecord:
        """Create an incident record in its own transaction."""
        async with self.transaction() as session:
            incident = IncidentRecord(
                incident_type=incident_type,
                severity=severity,
                description=description[:500],
                user_id=user_id,
                symbol=symbol,
                order_id=order_id,
                incident_metadata=metadata,
            )
            session.add(incident)
        return incident

    async def get_incidents(self, incident_type: Optional[str] = None) -> List[IncidentRecord]:
        """Get all incidents, optionally filtered by type."""
        async with self.create_session() as session:
            stmt = select(IncidentRecord)
            if incident_type:
                stmt = stmt.where(IncidentRecord.incident_type == incident_type)
            return list((await session.execute(stmt)).scalars().all())
