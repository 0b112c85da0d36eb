"""Data access layer for order history and saved credentials"""

from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from bourso_desk.domain.models import Amount, Order, OrderArgs, Quantity
from bourso_desk.infrastructure.database.models import CredentialRecord, OrderRecord


def _to_order(record: OrderRecord) -> Order:
    size = Quantity(record.quantity) if record.quantity is not None else Amount(Decimal(record.amount))
    return Order(
        id=record.id,
        price=Decimal(record.price),
        args=OrderArgs(account_id=record.account_id, symbol=record.symbol, side=record.side, size=size),
        timestamp=record.placed_at,
    )


class OrderHistoryRepository:
    """Repository for placed orders"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(self, order: Order) -> None:
        """Persist an order; recording the same order id twice keeps one row"""
        size = order.args.size
        with self.session_factory() as db:
            db.merge(
                OrderRecord(
                    id=order.id,
                    account_id=order.args.account_id,
                    symbol=order.args.symbol,
                    side=order.args.side,
                    quantity=size.value if isinstance(size, Quantity) else None,
                    amount=size.value if isinstance(size, Amount) else None,
                    price=order.price,
                    placed_at=order.timestamp,
                )
            )
            db.commit()

    def list_orders(self, symbol: Optional[str] = None) -> List[Order]:
        """Orders oldest first, optionally for one symbol"""
        with self.session_factory() as db:
            query = db.query(OrderRecord)
            if symbol is not None:
                query = query.filter(OrderRecord.symbol == symbol)
            records = query.order_by(OrderRecord.created_at, OrderRecord.id).all()
            return [_to_order(r) for r in records]


class CredentialRepository:
    """Repository for the single saved login"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _current(self, db: Session) -> Optional[CredentialRecord]:
        return db.query(CredentialRecord).order_by(CredentialRecord.id).first()

    def load(self) -> Tuple[Optional[str], Optional[str]]:
        with self.session_factory() as db:
            record = self._current(db)
            if record is None:
                return None, None
            return record.client_id, record.password

    def save(self, client_id: str, password: Optional[str]) -> None:
        with self.session_factory() as db:
            record = self._current(db)
            if record is None:
                record = CredentialRecord(client_id=client_id)
                db.add(record)
            record.client_id = client_id
            record.password = password
            db.commit()

    def clear(self) -> None:
        with self.session_factory() as db:
            db.query(CredentialRecord).delete()
            db.commit()
