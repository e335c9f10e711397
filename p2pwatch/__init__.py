"""Watch a P2P crypto marketplace for the best listings and cross-side spreads."""

__version__ = "0.1.0"
