"""SQLAlchemy ORM models for what the desk keeps locally"""

from sqlalchemy import BigInteger, Column, DateTime, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class OrderRecord(Base):
    """Order placed through the desk; the bank only keeps a year of them"""

    __tablename__ = "order_history"

    id = Column(Text, primary_key=True)
    account_id = Column(Text, nullable=False, index=True)
    symbol = Column(Text, nullable=False, index=True)
    side = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=True)
    amount = Column(Numeric(18, 2), nullable=True)
    price = Column(Numeric(18, 4), nullable=False)
    placed_at = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CredentialRecord(Base):
    """Saved login; the password column stays empty unless the user opted in"""

    __tablename__ = "saved_credentials"

    id = Column(Integer, primary_key=True)
    client_id = Column(Text, nullable=False)
    password = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
