"""
Tindo API - Last known agent location

One row per agent, superseded by every newer sample. No breadcrumb trail
is kept.
"""
from datetime import datetime
from sqlalchemy import String, Integer, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from tindo.db.database import Base


class AgentLocation(Base):
    __tablename__ = "agent_locations"

    agent_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    order_id: Mapped[str] = mapped_column(String(12), index=True, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)  # meters
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)     # m/s
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)   # degrees from north
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AgentLocation agent_id={self.agent_id} lat={self.latitude} lng={self.longitude}>"
