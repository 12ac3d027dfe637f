"""
Store Mocks

In-memory stand-ins for the persistence collaborators, used by the test
suite and by local tooling that should not need a database.

Available Mock Systems:
======================

1. **InMemoryGroupStore** - Groups, memberships and school roles

Usage Examples:
==============

```python
from learnsync.mocks import InMemoryGroupStore
from learnsync.services.domain import GroupService

store = InMemoryGroupStore()
store.add_school_member("school-1", 7)

service = GroupService(store)
service.initialize()

root = service.create_group("school-1", "Year 9").data
service.assign_members("school-1", root.id, [7])
```

Failure injection:
=================

```python
store.fail_on("update_parent")       # next call raises DependencyFailure
```
"""

from .group_store_mock import InMemoryGroupStore

__all__ = [
    'InMemoryGroupStore'
]
