import uuid
from sqlalchemy import Column, Float, Integer, String, ForeignKey
from signage.db import Base


class Screen(Base):
    __tablename__ = "screen"
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_id = Column(String(64), ForeignKey("display.id"), nullable=False)
    name = Column(String, nullable=True)
    x = Column(Integer, nullable=False, default=0)
    y = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=False, default=512)
    height = Column(Integer, nullable=False, default=512)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    address = Column(String, nullable=True)
