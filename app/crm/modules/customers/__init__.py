"""
Customers module.

- Owner-scoped customer CRUD (every query goes through `owned_customers`)
- CSV / PDF export of the caller's customers
"""
