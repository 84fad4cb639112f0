"""
                Restrona POS

Multi-tenant restaurant point-of-sale backend: restaurant registry,
menus, tables, staff accounts and a dine-in order workflow driven by
QR-code menus and live staff dashboards.
"""

__version__ = "1.0.0"
