"""Custom JSON encoding utilities"""
import json
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

class ResultEncoder(json.JSONEncoder):
    """JSON encoder for service results: pydantic models, datetimes, enums and sets"""
    def default(self, obj):
        if isinstance(obj, BaseModel):
            return obj.model_dump()
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)

def json_dumps(obj, **kwargs):
    """Helper function to dump JSON with result handling"""
    return json.dumps(obj, cls=ResultEncoder, **kwargs)
