"""
M365 Compromise Detection Engine
================================
Offline analysis of exported Microsoft 365 audit data for signs of account
compromise. Correlates sign-ins, admin audit events, inbox rules, mailbox
delegations, app registrations, Conditional Access policies and message
trace into a single risk-ranked list of accounts.

The engine only reads exported CSV files; it never connects to the tenant.
"""

__version__ = "1.0.0"
__author__ = "M365 Compromise Detection Engine"
