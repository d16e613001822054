"""API facade package."""

from src.api.loans import ApiResponse, LoansAPI

__all__ = ["ApiResponse", "LoansAPI"]
