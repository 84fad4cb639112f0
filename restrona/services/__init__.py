"""
                        Services Module

Business logic for the POS. Every service is constructed per request with
the request's session and collaborators; none of them holds global state.

Services:
    - authorization: the single allow/deny decision point
    - orders: order lifecycle engine (creation + status workflow)
    - cart: client-side item selection before submission
    - restaurants / menu / tables: tenant registry and catalogs
    - staff: staff accounts (identity principal + user record)
    - otp: phone verification codes
    - analytics: dashboard aggregates

Provider families (Mock in development, real APIs otherwise):
    - identity: Supabase Auth
    - notifications: Twilio SMS
    - events: Redis pub/sub
"""

from restrona.services.authorization import AuthorizationGate, AuthDecision, PermissionMatch, Principal
from restrona.services.cart import Cart, CartLine
from restrona.services.orders import CustomerInfo, OrderLifecycleEngine

__all__ = [
    "AuthorizationGate",
    "AuthDecision",
    "PermissionMatch",
    "Principal",
    "Cart",
    "CartLine",
    "CustomerInfo",
    "OrderLifecycleEngine",
]
