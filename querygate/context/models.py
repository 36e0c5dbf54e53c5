"""
Data models for conversation context
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ConversationContext:
    """Per-user conversational state"""
    user_id: str
    created_at: datetime
    updated_at: datetime
    session_entities: Dict[str, Any] = field(default_factory=dict)
    message_history: List[Dict[str, Any]] = field(default_factory=list)
    tool_state: Dict[str, Any] = field(default_factory=dict)
    memory_blocks: List[Dict[str, Any]] = field(default_factory=list)
    last_query: Optional[str] = None
    last_sql: Optional[str] = None
    last_result: Optional[Dict[str, Any]] = None
    query_history: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def new(cls, user_id: str, now: datetime) -> "ConversationContext":
        return cls(user_id=user_id, created_at=now, updated_at=now)

    @property
    def last_result_summary(self) -> Optional[str]:
        if self.last_result:
            return self.last_result.get("summary")
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationContext":
        values = dict(data)
        values["created_at"] = datetime.fromisoformat(values["created_at"])
        values["updated_at"] = datetime.fromisoformat(values["updated_at"])
        return cls(**values)
