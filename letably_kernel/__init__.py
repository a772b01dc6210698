"""
Letably Kernel - payment ledger for multi-tenant property management.

A tenant-isolated ledger with:
- Manual and automated payment schedules (PCM rent method)
- Balance-protected payment recording in either direction (charges and credits)
- Derived schedule status recomputed on every payment mutation
- Defense-in-depth agency isolation (query filters, session guards, row-level security)
"""

__version__ = "0.1.0"
