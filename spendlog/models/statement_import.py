import enum

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from spendlog.core.database import Base

class ImportStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PASSWORD_REQUIRED = "password_required"
    EXTRACTED = "extracted"
    CATEGORIZING = "categorizing"
    READY = "ready"
    COMPLETED = "completed"
    FAILED = "failed"

class StatementImport(Base):
    __tablename__ = "statement_imports"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_hash = Column(String(64), nullable=False, default="", index=True)
    bank_name = Column(String(100), nullable=True)
    statement_period_start = Column(Date, nullable=True)
    statement_period_end = Column(Date, nullable=True)
    
    total_transactions = Column(Integer, nullable=False, default=0)
    imported_transactions = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ImportStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)
    
    # Hard TTL, independent of status
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    transactions = relationship(
        "ExtractedTransaction",
        back_populates="statement_import",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

class ExtractedTransaction(Base):
    __tablename__ = "extracted_transactions"
    
    id = Column(Integer, primary_key=True, index=True)
    import_id = Column(Integer, ForeignKey("statement_imports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    transaction_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    transaction_type = Column(String(6), nullable=False)  # debit, credit
    balance = Column(Numeric(12, 2), nullable=True)
    raw_text = Column(Text, nullable=True)
    
    # Categorization
    suggested_category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    ai_confidence = Column(Numeric(3, 2), nullable=True)
    
    # Selection and duplicate markers
    is_selected = Column(Boolean, nullable=False, default=True)
    is_duplicate = Column(Boolean, nullable=False, default=False)
    duplicate_of = Column(Integer, ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True)
    duplicate_override = Column(Boolean, nullable=False, default=False)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    statement_import = relationship("StatementImport", back_populates="transactions")
