"""Content-directory site, mapped only for the columns the tour sync reads and writes."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tourlink.database import Base


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # GeoJSON point: {"type": "Point", "coordinates": [lng, lat]}
    location: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"))
    tours_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    tours_sync_status: Mapped[str | None] = mapped_column(String(30))
