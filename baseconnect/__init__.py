"""
BaseConnect — wallet session controller for the Base network.

Orchestrates injected, relay and aggregator wallet backends behind one
Session, and keeps the native balance in sync with it.
"""

__version__ = "0.1.0"
