"""
Application handlers that run on top of the engine.

    from knoxius.handlers import AgilefantHandlers

    AgilefantHandlers(config).register(server.router)
"""

from .agilefant import AgilefantHandlers

__all__ = ["AgilefantHandlers"]
