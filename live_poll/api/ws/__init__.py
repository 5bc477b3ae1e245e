from live_poll.api.ws.routes import router

__all__ = ["router"]
