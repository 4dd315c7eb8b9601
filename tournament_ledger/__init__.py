"""
Tournament Ledger - staking, scoring and prize settlement for agent tournaments.

Agents register with a stake, an administrator records their scores while
the tournament is active, and ending the tournament pays the top three
finishers 50/30/20 of the pooled stakes.
"""

__version__ = "0.1.0"
