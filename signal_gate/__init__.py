"""Subscription-gated trading signal distribution platform."""

__version__ = "1.0.0"
