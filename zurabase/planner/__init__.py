# Planner board engine: ordered lanes and cards, split groups, optimistic sync
#
# Components:
#   schema.py    - Data model (Planner, Lane, Card, PlannerTemplate, group roles)
#   ordering.py  - Pure reindex / move / group reorder functions
#   split.py     - Split a lane into a linked group, merge it back
#   commands.py  - Tagged commands and the planner reducer
#   store.py     - In-memory planner holder with snapshots
#   api.py       - REST client for the planner backend
#   sync.py      - Optimistic apply, backend confirm, rollback
#   autosave.py  - Debounced save state machine
#   markdown.py  - Markdown export/import
#   templates.py - Predefined kanban/scrum lane sets
#   engine.py    - dispatch() facade tying it all together
#   config.py    - YAML/env configuration
#   cli.py       - Command-line front-end
