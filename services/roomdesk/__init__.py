"""Room Desk: hotel room-booking administration service."""

__version__ = "0.1.0"
