from casebundle_api.api.routes.compositions import build_compositions_router

__all__ = ["build_compositions_router"]
