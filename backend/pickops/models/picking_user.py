"""
Picking user model - the local user directory that pickers are resolved against
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from pickops.db.base import Base


class PickingUser(Base):
    """Warehouse staff member who can start, complete or pack picking sessions"""
    __tablename__ = "picking_users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    role = Column(String(20), default="picker", nullable=False)  # picker, supervisor, admin
    active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PickingUser {self.id} {self.name!r} active={self.active}>"
