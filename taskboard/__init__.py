# Taskboard: kanban projects and tasks over a JSON-file REST API
#
# Components:
#   schema.py    - Data model (Project, Task, TaskStatus, TaskPriority)
#   storage.py   - Whole-snapshot JSON storage (file and in-memory)
#   store.py     - Domain store: CRUD, default project, cascading deletes
#   accounts.py  - Per-account identities, JWT access and refresh tokens
#   access.py    - Access models (open / shared-secret / per-account)
#   audit.py     - JSON-lines audit trail for auth events
#   config.py    - YAML + environment configuration
#   server.py    - Flask REST API
#   client.py    - HTTP client for the API
#   board.py     - Board view-model with optimistic drag and drop
