"""
Core modules for MeetingSync billing.

This package contains the pricing catalog, participant scaling, overage
ledger, session accounting engine and usage ledger.
"""
