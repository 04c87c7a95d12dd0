# Taskboard: task ordering, column-driven status, and assignment for kanban boards
#
# Components:
#   schema.py      - Data model (Task, Column, Project, User, Candidate, enums)
#   errors.py      - Error taxonomy surfaced to API callers
#   positions.py   - Fractional position keys for in-column ordering
#   classifier.py  - Column name -> lifecycle status heuristics
#   suggester.py   - LLM-backed assignee suggestions (advisory, may fail)
#   assignment.py  - Suggestion -> candidate id resolution with workload fallback
#   store.py       - SQLite persistence layer
#   events.py      - Project event channel (subscribers + optional webhook)
#   coordinator.py - Create/move/update orchestration
#   config.py      - YAML configuration
#   server.py      - Flask JSON API
