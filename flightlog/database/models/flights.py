from sqlalchemy import Column, Date, DateTime, Float, Index, Integer, JSON, String, Text, UniqueConstraint, func
from flightlog.database.models.Base import Base


class FlightRecordDB(Base):
    __tablename__ = "flights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_email = Column(String(320), nullable=False)

    # Identity
    confirmation_number = Column(String(16), nullable=True)
    flight_date = Column(Date, nullable=False)
    departure_airport = Column(String(3), nullable=False)
    arrival_airport = Column(String(3), nullable=False)
    flight_number = Column(String(16), nullable=True)

    # Schedule
    departure_time_local = Column(String(5), nullable=True)
    arrival_time_local = Column(String(5), nullable=True)

    # Looked up from the airport directory
    departure_city = Column(String(100), nullable=True)
    arrival_city = Column(String(100), nullable=True)
    departure_lat = Column(Float, nullable=True)
    departure_lng = Column(Float, nullable=True)
    arrival_lat = Column(Float, nullable=True)
    arrival_lng = Column(Float, nullable=True)

    airline = Column(String(100), nullable=True)
    cabin = Column(String(50), nullable=True)
    passenger_names = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    # Email provenance
    email_message_id = Column(String(255), nullable=True)
    email_sent_date = Column(String(64), nullable=True)
    email_subject = Column(String(500), nullable=True)
    raw_email_content = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    # NULL never equals NULL here, so rows missing a key field are never rejected
    __table_args__ = (
        UniqueConstraint(
            "user_email",
            "confirmation_number",
            "flight_date",
            "departure_airport",
            "arrival_airport",
            "flight_number",
            name="flights_unique_key",
        ),
        Index("idx_flights_user_date", "user_email", "flight_date"),
        Index("idx_flights_message", "user_email", "email_message_id"),
    )
