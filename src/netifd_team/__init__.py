"""Team (teamd) composite device type for a network interface daemon."""

__version__ = "0.1.0"
