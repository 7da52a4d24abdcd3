"""
Invoice Kernel

Domain types, typed exceptions, structured logging and the reference
persistence layer for the received-invoice approval workflow:
- Two-gate approval lifecycle (manager, accounting)
- Rule-driven approval routing by invoice total
- Conditional (optimistic) status updates per invoice
- Append-only approval history
"""

__version__ = "0.1.0"
