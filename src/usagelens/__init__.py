"""usagelens — reconciled usage and cost analytics for coding-assistant session logs."""

__version__ = "0.1.0"
