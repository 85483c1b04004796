"""Calendar domain - Google Calendar OAuth linkage and credential lifecycle"""

from .router import router

__all__ = ["router"]
