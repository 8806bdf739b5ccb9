"""droidact - declarative UI actions for Android devices."""

__version__ = "0.1.0"
