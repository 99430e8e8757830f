"""Per-instance hourly usage and inventory reports for RDS fleets."""

__version__ = '0.1.0'
