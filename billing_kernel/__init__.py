"""
Billing Kernel - rental billing calculation core

Apportions rent and utility bills among tenants who occupy a property for
whole or partial months:
- Decimal-exact money arithmetic with remainder absorption
- Calendar-aware occupancy (leap years, same-day moves)
- Replace-semantics allocation persistence (all-or-nothing)
- Billing period lifecycle (calculated -> finalized)
- Append-only audit trail
"""

__version__ = "0.1.0"
