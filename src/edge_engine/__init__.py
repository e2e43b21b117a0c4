"""
Volume-edge decision core.

Turns OHLCV bars and market-condition snapshots into one approved trade
action per symbol and cycle, and keeps live positions consistent.
"""

__version__ = "0.1.0"
