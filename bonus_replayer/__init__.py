"""
Bonus Replayer - Reprocess redeemed bonuses

Downloads persisted redeemed-bonus requests from object storage and
replays them, one at a time, against the downstream redeem API.
"""

__version__ = "1.0.0"
