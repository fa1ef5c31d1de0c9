"""
Matrix integration: the messaging facade and its components.
"""

from .facade import MatrixMessagingFacade

__all__ = ["MatrixMessagingFacade"]
