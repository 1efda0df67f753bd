from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, String
from signage.db import Base


class ScreenState(Base):
    __tablename__ = "screen_state"
    screen_id = Column(String(64), ForeignKey("screen.id"), primary_key=True)
    image_src = Column(String, nullable=True)  # NULL means the screen is off
    scenario = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
