#!/usr/bin/env python3
"""
Services package - decode/encode service and activity editing
"""

from .activity_service import ActivityService
from .editor import ActivityEditor

__all__ = ['ActivityService', 'ActivityEditor']
