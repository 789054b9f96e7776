"""SQLAlchemy models and session setup for the vmctl state database."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from vmctl.constants import STATUS_STOPPED
from vmctl.utils import ensure_directory

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite stores datetimes without an offset."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Instance(Base):
    """A virtual machine known to vmctl and the state of its QEMU process."""

    __tablename__ = "virtual_machines"
    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, nullable=False, default=STATUS_STOPPED)
    pid = Column(Integer, nullable=True)
    cpu = Column(String, nullable=False)
    cpus = Column(Integer, nullable=False)
    memory = Column(String, nullable=False)
    disk_format = Column(String, nullable=False)
    disk_size = Column(String, nullable=False)
    drive_path = Column(String, nullable=True)
    iso_path = Column(String, nullable=True)
    bridge = Column(String, nullable=True)
    port_forward = Column(String, nullable=True)
    mac_address = Column(String, nullable=False)
    version = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        data = {column.name: getattr(self, column.name) for column in self.__table__.columns}
        for key in ("created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    def __repr__(self) -> str:
        return f"<Instance {self.name} ({self.id}) {self.status} pid={self.pid}>"


class Image(Base):
    """A base disk image that volumes are cloned from."""

    __tablename__ = "images"
    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False, index=True)
    path = Column(String, nullable=False)
    format = Column(String, nullable=False)
    size = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    volumes = relationship("Volume", back_populates="base_image")


class Volume(Base):
    """A copy-on-write qcow2 overlay backed by an image."""

    __tablename__ = "volumes"
    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False, index=True)
    path = Column(String, nullable=False)
    size = Column(String, nullable=True)
    base_image_id = Column(String, ForeignKey("images.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    base_image = relationship("Image", back_populates="volumes")


def make_engine(database_path: Optional[Path] = None) -> Engine:
    if database_path is None:
        url = "sqlite://"
    else:
        ensure_directory(database_path.parent)
        url = f"sqlite:///{database_path}"
    # check_same_thread is only relevant to SQLite
    return create_engine(url, connect_args={"check_same_thread": False})


def open_session(database_path: Optional[Path] = None) -> Session:
    """Create the schema if needed and return a new session.

    ``expire_on_commit`` is disabled so records stay readable after the
    session that loaded them has committed.
    """
    engine = make_engine(database_path)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return factory()
