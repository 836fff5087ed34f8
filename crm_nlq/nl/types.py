# crm_nlq/nl/types.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class IntentCategory(str, Enum):
    CONTACT_QUERY = "CONTACT_QUERY"
    ACCOUNT_QUERY = "ACCOUNT_QUERY"
    ACTIVITY_QUERY = "ACTIVITY_QUERY"
    QUOTATION_QUERY = "QUOTATION_QUERY"
    LEAD_QUERY = "LEAD_QUERY"
    PERFORMANCE_QUERY = "PERFORMANCE_QUERY"
    AGGREGATION_QUERY = "AGGREGATION_QUERY"
    COMPARISON_QUERY = "COMPARISON_QUERY"
    TREND_QUERY = "TREND_QUERY"
    PREDICTION_QUERY = "PREDICTION_QUERY"


AggregationType = Literal["count", "sum", "average", "max", "min"]
Role = Literal["admin", "employee", "data_analyst"]
Direction = Literal["ASC", "DESC"]

# Accept both the camelCase wire names and our snake_case field names
_wire = ConfigDict(populate_by_name=True, extra="ignore")


class TimeRange(BaseModel):
    model_config = _wire

    start: Optional[str] = None   # ISO date or relative phrase ("last 7 days")
    end: Optional[str] = None

    @model_validator(mode="after")
    def _one_bound(self):
        if self.start is None and self.end is None:
            raise ValueError("timeRange needs a start or an end")
        return self


class QueryIntent(BaseModel):
    model_config = _wire

    category: IntentCategory
    tables: List[str] = Field(default_factory=list)        # order picks the driving table
    filters: Dict[str, Any] = Field(default_factory=dict)  # field -> scalar | {"$op": value}
    aggregation_type: Optional[AggregationType] = Field(None, alias="aggregationType")
    time_range: Optional[TimeRange] = Field(None, alias="timeRange")


class QueryIntentResult(BaseModel):
    model_config = _wire

    intent: QueryIntent
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str


class UserContext(BaseModel):
    model_config = _wire

    user_id: Optional[Union[int, str]] = Field(None, alias="userId")
    employee_id: Optional[Union[int, str]] = Field(None, alias="employeeId")
    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def _lower_role(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class OrderBy(BaseModel):
    field: str
    direction: Direction = "ASC"

    @field_validator("direction", mode="before")
    @classmethod
    def _upper_direction(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class QueryOptions(BaseModel):
    model_config = _wire

    limit: Optional[int] = Field(None, ge=1)
    offset: Optional[int] = Field(None, ge=0)
    order_by: List[OrderBy] = Field(default_factory=list, alias="orderBy")
    group_by: List[str] = Field(default_factory=list, alias="groupBy")


class CompiledQuery(BaseModel):
    model_config = _wire

    sql: str
    params: List[Any] = Field(default_factory=list)   # $1 is params[0]
    affected_tables: List[str] = Field(default_factory=list, alias="affectedTables")
    explanation: str = ""


@dataclass
class IntentCheck:
    """Outcome of decoding an oracle response: a usable result or the reason it is not."""
    ok: bool
    reason: str | None = None
    result: QueryIntentResult | None = None
