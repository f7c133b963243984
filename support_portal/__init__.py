"""
Support Portal
==============

Seller/customer support ticketing portal: ticket priority scoring, SLA
targets, snapshotting, Slack routing and role-based access.
"""

__version__ = "1.0.0"
