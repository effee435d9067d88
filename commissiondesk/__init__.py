"""Commission Desk: trainer commission calculation for training studios."""

__version__ = "0.3.0"
