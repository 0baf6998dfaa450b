"""Like toggling for apartment listings."""

from .like_toggle import LikeToggler

__all__ = ['LikeToggler']
