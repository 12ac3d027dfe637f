"""
Service Layer

Business logic between the API routes / Celery tasks and the stores.

1. **Base Services** (base.py):
   - Error types and ``ServiceResult``
   - ``service_method`` logging and error handling

2. **Domain Services** (domain/):
   - Group hierarchy traversal and membership (group_service.py, hierarchy.py)
   - School membership and roles (school_service.py)
   - Store interface and SQLAlchemy implementation (stores.py, sqlalchemy_store.py)

Usage Example:
=============

```python
from learnsync.core.database import SessionLocal
from learnsync.services.domain import GroupService, SQLAlchemyGroupStore

service = GroupService(SQLAlchemyGroupStore(SessionLocal()))
service.initialize({"hierarchy_max_depth": 64})

result = service.assign_members(school_id, group_id=3, user_ids=[7, 8])
if result.success:
    print(result.data)          # newly created (user_id, group_id) pairs
else:
    print(result.error.error_code, result.error.message)
```
"""

from .base import BaseService, ServiceError, ServiceResult

__all__ = [
    'BaseService',
    'ServiceError',
    'ServiceResult'
]
