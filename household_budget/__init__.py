"""
Household Budget - Source Package

A family budget tracker: family members record income and expense
transactions against named accounts, grouped by user-defined categories,
with running account balances maintained on every mutation.

PRINCIPLES:
1. Every transaction mutation keeps the affected account balances in step
2. Validate first, write second
3. Multi-step writes are not atomic, and failures say so loudly
4. Views are recomputed from fresh snapshots, never merged
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Budget Team"
