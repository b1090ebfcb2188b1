"""
SQLAlchemy models for WaterMe database tables.

Controllers own their sensors and readings (cascade). Users and controllers
are linked through the ``subscriptions`` table, unique per pair.
"""

from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, BigInteger, Float, DateTime, Boolean, JSON,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from waterme.infrastructure.database.config import Base
from waterme.core.domain.entities import DEFAULT_EMAIL


class TimestampedMixin:
    """Mixin for models with created_at and updated_at timestamps."""
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())


class ControllerModel(Base, TimestampedMixin):
    """Microcontroller database model."""
    __tablename__ = 'controllers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    mac_address = Column(String(64), nullable=False, unique=True, index=True)
    location = Column(JSON, nullable=True)

    # Relationships
    sensors = relationship(
        "SensorModel",
        back_populates="controller",
        order_by="SensorModel.position",
        cascade="all, delete-orphan"
    )
    subscriptions = relationship(
        "SubscriptionModel",
        back_populates="controller",
        order_by="SubscriptionModel.id"
    )


class SensorModel(Base):
    """Sensor database model, ordered by registration position."""
    __tablename__ = 'sensors'

    id = Column(Integer, primary_key=True, autoincrement=True)
    controller_id = Column(Integer, ForeignKey('controllers.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    type = Column(String(100), nullable=False)
    threshold_max = Column(Float, nullable=True)
    threshold_min = Column(Float, nullable=True)

    # Relationships
    controller = relationship("ControllerModel", back_populates="sensors")
    readings = relationship(
        "ReadingModel",
        back_populates="sensor",
        order_by="ReadingModel.sequence",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint('controller_id', 'position', name='uq_sensor_position'),
    )


class ReadingModel(Base):
    """Sensor reading database model, append-only."""
    __tablename__ = 'readings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    sensor_id = Column(Integer, ForeignKey('sensors.id', ondelete='CASCADE'), nullable=False)
    sequence = Column(Integer, nullable=False)
    time = Column(String(64), nullable=False)
    value = Column(String(64), nullable=False)

    # Relationships
    sensor = relationship("SensorModel", back_populates="readings")

    __table_args__ = (
        UniqueConstraint('sensor_id', 'sequence', name='uq_reading_sequence'),
        Index('idx_readings_sensor_sequence', 'sensor_id', 'sequence'),
    )


class UserModel(Base, TimestampedMixin):
    """Chat user database model."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    telegram_user_id = Column(BigInteger, nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=False, default='')
    last_name = Column(String(255), nullable=False, default='')
    email = Column(String(255), nullable=False, default=DEFAULT_EMAIL)
    notifications = Column(Boolean, nullable=False, default=True)

    # Relationships
    subscriptions = relationship(
        "SubscriptionModel",
        back_populates="user",
        order_by="SubscriptionModel.id"
    )


class SubscriptionModel(Base):
    """Link between a user and a controller."""
    __tablename__ = 'subscriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    controller_id = Column(Integer, ForeignKey('controllers.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    # Relationships
    user = relationship("UserModel", back_populates="subscriptions")
    controller = relationship("ControllerModel", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint('user_id', 'controller_id', name='uq_subscription_pair'),
    )
