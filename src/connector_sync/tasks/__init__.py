"""
Task subsystem.

Components:
- task_models.py: data structures (User, Category, Task, TaskLog) + wire codec
- task_store.py: snapshot store with mutation operations, persisted to key-value storage
- migrations.py: versioned fix-ups applied to stored and imported records
- notifications.py: overdue / due-soon / review / transfer alerts derived from tasks
- exchange.py: export file + staged import (stage -> confirm / cancel)
- task_api.py: read-side helpers used by the console
- seed.py: initial data for an empty store
"""
