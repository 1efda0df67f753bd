import uuid
from sqlalchemy import Column, String
from signage.db import Base


class Display(Base):
    __tablename__ = "display"
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
