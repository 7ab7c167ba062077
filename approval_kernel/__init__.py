"""
Approval Kernel

Department-scoped, multi-role sequential approval for financial request
entities (claims, budgets, contracts, invoices):
- Configurable per-department approval flows
- One generic state machine, parameterized per entity type
- Compare-and-swap transitions (no lost updates)
- Append-only audit trail written with every transition
"""

__version__ = "0.1.0"
