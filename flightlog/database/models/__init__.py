from .Base import Base
from .flights import FlightRecordDB

__all__ = ['Base', 'FlightRecordDB']
