from . import notifications, preferences

__all__ = ["notifications", "preferences"]
