from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class MovingPartners(Base):
    __tablename__ = 'moving_partners'

    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'ACTIVE'"))
    id = Column(Integer, primary_key=True)
    email = Column(Text)
    phone = Column(Text)

    availability = relationship('MovingPartnerAvailability', back_populates='moving_partner')
    time_slot_bookings = relationship('MoverTimeSlotBookings', back_populates='moving_partner')


class Drivers(Base):
    __tablename__ = 'drivers'

    first_name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'Active'"))
    id = Column(Integer, primary_key=True)
    last_name = Column(Text)
    phone = Column(Text)

    availability = relationship('DriverAvailability', back_populates='driver')
    time_slot_bookings = relationship('DriverTimeSlotBookings', back_populates='driver')
    external_tasks = relationship('ExternalTasks', back_populates='driver')


class MovingPartnerAvailability(Base):
    __tablename__ = 'moving_partner_availability'

    moving_partner_id = Column(ForeignKey('moving_partners.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Text, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    is_blocked = Column(Boolean, nullable=False, server_default=text('0'))

    moving_partner = relationship('MovingPartners', back_populates='availability')


class DriverAvailability(Base):
    __tablename__ = 'driver_availability'

    driver_id = Column(ForeignKey('drivers.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Text, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    is_blocked = Column(Boolean, nullable=False, server_default=text('0'))

    driver = relationship('Drivers', back_populates='availability')


class BlockedDates(Base):
    __tablename__ = 'blocked_dates'
    __table_args__ = (
        UniqueConstraint('user_type', 'user_id', 'blocked_date'),
    )

    user_type = Column(Text, nullable=False)  # mover / driver
    user_id = Column(Integer, nullable=False)
    blocked_date = Column(Date, nullable=False)
    id = Column(Integer, primary_key=True)
    reason = Column(Text)


class Appointments(Base):
    __tablename__ = 'appointments'

    date = Column(Date, nullable=False)
    time = Column(DateTime, nullable=False)
    plan_type = Column(Text, nullable=False)
    unit_count = Column(Integer, nullable=False, server_default=text('1'))
    status = Column(Text, nullable=False, server_default=text("'Scheduled'"))
    id = Column(Integer, primary_key=True)

    mover_bookings = relationship('MoverTimeSlotBookings', back_populates='appointment')
    driver_bookings = relationship('DriverTimeSlotBookings', back_populates='appointment')
    external_tasks = relationship('ExternalTasks', back_populates='appointment')


class MoverTimeSlotBookings(Base):
    __tablename__ = 'mover_time_slot_bookings'

    moving_partner_id = Column(ForeignKey('moving_partners.id', ondelete='CASCADE'), nullable=False)
    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False)
    booking_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)

    moving_partner = relationship('MovingPartners', back_populates='time_slot_bookings')
    appointment = relationship('Appointments', back_populates='mover_bookings')


class DriverTimeSlotBookings(Base):
    __tablename__ = 'driver_time_slot_bookings'

    driver_id = Column(ForeignKey('drivers.id', ondelete='CASCADE'), nullable=False)
    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False)
    booking_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)

    driver = relationship('Drivers', back_populates='time_slot_bookings')
    appointment = relationship('Appointments', back_populates='driver_bookings')


class ExternalTasks(Base):
    __tablename__ = 'external_tasks'

    driver_id = Column(ForeignKey('drivers.id', ondelete='SET NULL'))
    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False)
    id = Column(Integer, primary_key=True)
    external_id = Column(Text)
    step = Column(Integer)

    driver = relationship('Drivers', back_populates='external_tasks')
    appointment = relationship('Appointments', back_populates='external_tasks')
