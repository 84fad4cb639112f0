"""
HTTP/WebSocket API

All routers are mounted under ``/api`` by main.py.
"""

from fastapi import APIRouter

from restrona.api import analytics, auth, menu, orders, public, realtime, restaurants, tables, users

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(restaurants.router)
api_router.include_router(menu.router)
api_router.include_router(tables.router)
api_router.include_router(orders.router)
api_router.include_router(users.router)
api_router.include_router(analytics.router)
api_router.include_router(public.router)
api_router.include_router(realtime.router)

__all__ = ["api_router"]
