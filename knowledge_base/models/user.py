from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from .base import BaseModel


class User(BaseModel):
    """Document owner. Accounts are managed by the auth service."""
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)

    documents = relationship("Document", back_populates="user", passive_deletes=True)
