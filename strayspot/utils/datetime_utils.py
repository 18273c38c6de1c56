# strayspot/utils/datetime_utils.py
"""
문서 저장소와 도메인 모델 사이의 시간 처리 유틸리티

- 모든 시각은 UTC timezone-aware datetime으로 다룹니다.
- Firestore 저장/조회 시의 변환과 경과 시간 계산(점유 만료, 정합성 복구 유예)을 한 곳에서 처리합니다.
"""

import logging
from datetime import datetime, date, timezone, time
from typing import Any, Optional

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """시간/날짜 처리를 위한 중앙화된 유틸리티 클래스"""

    @staticmethod
    def now() -> datetime:
        """현재 시간을 UTC timezone-aware datetime으로 반환"""
        return datetime.now(timezone.utc)

    @staticmethod
    def seconds_since(moment: Optional[datetime]) -> Optional[float]:
        """주어진 시각으로부터 경과한 초. 값이 없으면 None."""
        if moment is None:
            return None
        moment = DateTimeUtils.from_firestore(moment)
        return (DateTimeUtils.now() - moment).total_seconds()

    @staticmethod
    def for_firestore(obj: Any) -> Any:
        """
        문서를 저장하기 전에 날짜/시간 필드를 정규화

        - date -> 해당 날짜 00:00:00 UTC
        - naive datetime -> UTC로 간주
        - dict/list는 재귀적으로 변환
        """
        if isinstance(obj, date) and not isinstance(obj, datetime):
            return datetime.combine(obj, time.min).replace(tzinfo=timezone.utc)
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                return obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc)
        if isinstance(obj, dict):
            return {k: DateTimeUtils.for_firestore(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [DateTimeUtils.for_firestore(item) for item in obj]
        return obj

    @staticmethod
    def from_firestore(obj: Any) -> Any:
        """
        저장소에서 읽은 문서의 datetime 필드를 UTC로 정규화합니다.
        Firestore의 DatetimeWithNanoseconds도 datetime 하위 클래스이므로 그대로 처리됩니다.
        """
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                return obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc)
        if isinstance(obj, dict):
            return {k: DateTimeUtils.from_firestore(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [DateTimeUtils.from_firestore(item) for item in obj]
        return obj
