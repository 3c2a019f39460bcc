"""WordPress connection, endpoint mapping and feed sync."""

from pilot.wordpress.router import wordpress_router

__all__ = ["wordpress_router"]
