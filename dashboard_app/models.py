import enum
from sqlalchemy import (
    Column, Integer, String, LargeBinary, DateTime, Date, Numeric, Boolean, JSON,
    Text, Enum, ForeignKey,
)
from sqlalchemy.sql import func
from .database import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {"id": self.id, "email": self.email}


class LinkedAccount(Base):
    __tablename__ = "linked_accounts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    item_id = Column(String, unique=True, index=True, nullable=False)
    # Fernet-encrypted Plaid access token
    access_token = Column(LargeBinary, nullable=False)
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    account_name = Column(String, nullable=True)
    # Inclusive range of days already synchronized from Plaid
    cached_start = Column(Date, nullable=True)
    cached_end = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "institution_id": self.institution_id,
            "institution_name": self.institution_name,
            "account_name": self.account_name,
            "cached_start": self.cached_start.isoformat() if self.cached_start else None,
            "cached_end": self.cached_end.isoformat() if self.cached_end else None,
        }


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String, unique=True, index=True, nullable=False)
    linked_account_id = Column(Integer, ForeignKey("linked_accounts.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    date = Column(Date, index=True, nullable=False)
    name = Column(String, nullable=False)
    merchant_name = Column(String, nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
    categories = Column(JSON, nullable=False, default=list)
    is_processed = Column(Boolean, nullable=False, default=False)
    processing_batch_id = Column(Integer, ForeignKey("processing_batches.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "linked_account_id": self.linked_account_id,
            "amount": float(self.amount),
            "date": self.date.isoformat(),
            "name": self.name,
            "merchant_name": self.merchant_name,
            "pending": self.pending,
            "categories": list(self.categories or []),
            "is_processed": self.is_processed,
            "processing_batch_id": self.processing_batch_id,
        }


class BatchStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ProcessingBatch(Base):
    __tablename__ = "processing_batches"
    id = Column(Integer, primary_key=True, index=True)
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False, default="")
    status = Column(Enum(BatchStatus), nullable=False, default=BatchStatus.PENDING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
