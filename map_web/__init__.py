"""
Web layer for map-intelligente.

Routers are mounted by map_web.main.create_app():
- map_web.auth_routes.router
- map_web.admin_routes.router
"""
