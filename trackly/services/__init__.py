"""
Services package
"""

from .trackly_api import ITracklyRepository, TracklyApiClient

__all__ = ['ITracklyRepository', 'TracklyApiClient']
