"""Storefront vertical — book catalog with purchases and fixed-term rentals.

The inventory and rental lifecycle engine:
- SQLAlchemy models for books, rentals, purchases and notifications
- Inventory ledger with atomic conditional reserve/release
- Rental state machine with derived overdue status
- Transaction coordinator with compensation on partial failure
- Read-only reporting for the admin dashboard
- FastAPI router exposing all of the above
"""
