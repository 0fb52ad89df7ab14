"""
Module: billing_kernel.db.types
Responsibility: Shared column types for the billing models so that every
    money, area and code column uses identical definitions.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/ or
    services/.

Invariants enforced:
    - No floats in storage: money is Numeric(38, 9) and comes back as Decimal.
"""

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
MONEY = Numeric(38, 9, asdecimal=True)

# Floor area in m²
AREA = Numeric(12, 3, asdecimal=True)

# Status values, allocation methods, utility types
SHORT_CODE = String(50)

# Free text (notes, addresses)
LONG_TEXT = String(4000)
