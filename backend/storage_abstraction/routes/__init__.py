from storage_abstraction.routes.storage import router as storage_router

__all__ = ['storage_router']
