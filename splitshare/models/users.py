import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime
from splitshare.db.database import Base


class User(Base):
    """Local projection of users known to the identity service"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
