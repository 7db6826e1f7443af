from .compression import router as compression_router

__all__ = ["compression_router"]
