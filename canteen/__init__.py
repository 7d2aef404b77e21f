"""
                Canteen Meal Ordering System

Backend for department meal ordering: menu browsing, cart checkout with
pickup/delivery times, admin order fulfillment and sales reporting.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
