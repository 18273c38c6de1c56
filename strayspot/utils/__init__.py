# strayspot/utils/__init__.py
"""공용 유틸리티 패키지"""

from .datetime_utils import DateTimeUtils

__all__ = ['DateTimeUtils']
