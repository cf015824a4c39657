"""
Settings model for persisted operator configuration.

Values are stored as strings and converted by the callers, so that new
options never need a schema change.
"""

from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from ..database import Base


class Settings(Base):
    """Key/value table for operator-tunable options (thresholds, retention)."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(64), unique=True, nullable=False, index=True)
    value = Column(String, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Settings(key={self.key}, value={self.value})>"


def get_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    """Read one stored option, falling back to default when it was never set."""
    setting = db.query(Settings).filter(Settings.key == key).first()
    return setting.value if setting else default


def set_setting(db: Session, key: str, value: str) -> None:
    """Insert or overwrite one stored option. The caller commits."""
    setting = db.query(Settings).filter(Settings.key == key).first()
    if setting:
        setting.value = value
    else:
        db.add(Settings(key=key, value=value))
