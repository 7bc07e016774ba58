import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from spendlog.core.database import Base

class CategoryType(str, enum.Enum):
    NEEDS = "needs"
    WANTS = "wants"
    SAVINGS = "savings"

class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
        CheckConstraint(
            "budget_alert_threshold >= 0 AND budget_alert_threshold <= 100",
            name="ck_categories_alert_threshold"
        ),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#2DD4BF")
    icon = Column(String(50), nullable=False, default="tag")
    monthly_budget = Column(Numeric(12, 2), nullable=True)
    budget_alert_threshold = Column(Integer, nullable=False, default=80)
    # None means "infer from name"; an explicit value always wins
    category_type = Column(String(10), nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    user = relationship("User", back_populates="categories")

    @property
    def resolved_type(self) -> CategoryType:
        """Explicit type if set, else inferred from the name"""
        from spendlog.services.category_types import resolve_category_type
        return resolve_category_type(self.name, self.category_type)

class CategoryMapping(Base):
    """Learned description keyword -> category hint"""
    __tablename__ = "category_mappings"
    __table_args__ = (
        UniqueConstraint("user_id", "keyword", name="uq_category_mappings_user_keyword"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    keyword = Column(String(50), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    usage_count = Column(Integer, nullable=False, default=1)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
