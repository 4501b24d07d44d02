"""
Request and response types for the natural-language query pipeline
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from ..database.models import QueryResult


class NlState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    EXECUTING = "executing"
    DONE = "done"


@dataclass
class NlPermissions:
    """Statement classes the pipeline may propose on a connection"""
    can_read: bool = True
    can_update: bool = False
    can_delete: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NlPermissions":
        data = data or {}
        return cls(
            can_read=bool(data.get('canRead', data.get('can_read', True))),
            can_update=bool(data.get('canUpdate', data.get('can_update', False))),
            can_delete=bool(data.get('canDelete', data.get('can_delete', False))),
        )


@dataclass
class NlHistoryEntry:
    """One prior conversation turn (role is 'user' or 'assistant')"""
    role: str
    content: str
    sql: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NlHistoryEntry":
        return cls(role=data.get('role', 'user'), content=data.get('content', ''), sql=data.get('sql'))


@dataclass
class NlGenerateResponse:
    success: bool
    sql: Optional[str] = None
    explanation: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NlQueryResponse:
    success: bool
    sql: Optional[str] = None
    explanation: Optional[str] = None
    result: Optional[QueryResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NlInterpretResponse:
    success: bool
    answer: Optional[str] = None
    refined_sql: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
