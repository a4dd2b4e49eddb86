from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Date, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base

class Transaction(Base):
    __tablename__ = "transactions"
    
    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # negative = expense, positive = income
    description = Column(String, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    transfer_to_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)
    transfer_pair_id = Column(String(36), nullable=True, index=True)  # shared by both halves of a transfer
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    bank_account = relationship("BankAccount", foreign_keys=[bank_account_id])
    transfer_to_account = relationship("BankAccount", foreign_keys=[transfer_to_account_id])
    category = relationship("Category")
    
    __table_args__ = (
        Index("idx_transactions_account_date_id", "bank_account_id", "date", "id"),
    )
