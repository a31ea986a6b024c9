import uuid

def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"

"""
ID generation utilities & it provides:
- Task IDs
- Step IDs (unique across planning rounds)

The main purpose:
Consistent identifier creation across system.
"""
