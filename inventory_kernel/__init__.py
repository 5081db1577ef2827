"""
Inventory Kernel

Stock ledger and order fulfillment core with:
- Three-way stock counts (physical / reserved / available)
- Atomic conditional mutations with optimistic versioning
- All-or-nothing order reservations
- Hash-chained, append-only audit trail
"""

__version__ = "0.1.0"
