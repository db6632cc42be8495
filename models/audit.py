from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class AuditEntry:
    timestamp: datetime
    action: str              # "create", "update", "delete", "duplicate", "optimize", "allocate"
    scenario_id: str
    allocation_id: Optional[str]
    field_changed: str
    old_value: str
    new_value: str
    rationale: str = ""
