import uuid
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from signage.db import Base


class Scenario(Base):
    __tablename__ = "scenario"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, unique=True)
    display_order = Column(Integer, nullable=False, default=0)


class ScenarioAssignment(Base):
    __tablename__ = "scenario_assignment"
    __table_args__ = (UniqueConstraint("screen_id", "scenario", name="ux_assignment_screen_scenario"),)
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    screen_id = Column(String(64), ForeignKey("screen.id"), nullable=False)
    scenario = Column(String, nullable=False)
    image_path = Column(String, nullable=False)
    interval_ms = Column(Integer, nullable=True)
    images = relationship(
        "ScenarioImage",
        order_by="ScenarioImage.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ScenarioImage(Base):
    __tablename__ = "scenario_image"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assignment_id = Column(String(36), ForeignKey("scenario_assignment.id"), nullable=False)
    image_path = Column(String, nullable=False)
    order = Column(Integer, nullable=False)
