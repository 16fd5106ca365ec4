"""Vehicle owner relay: masked calls, SMS and emergency alerts."""

__version__ = "0.1.0"
