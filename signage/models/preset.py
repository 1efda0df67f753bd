import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, String, Text
from signage.db import Base


class Preset(Base):
    __tablename__ = "preset"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    scenarios = Column(Text, nullable=False, default="{}")  # JSON: {screen_id: scenario_name}
    created_at = Column(DateTime, default=datetime.utcnow)
