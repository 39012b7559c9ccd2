# Task board: status columns, chat threads, activity timeline, demo data
#
# Components:
#   domain.py        - Shared rules (status normalization, cycle, actor allow-list)
#   schema.py        - Records (Task, Message, TaskEvent, TaskStatus)
#   store.py         - SQLite persistence layer
#   events.py        - Append-only task event recorder
#   tasks.py         - Task create / status / description / reorder / move
#   messages.py      - Per-task chat messages
#   seed.py          - Demo data seeder (fixtures/demo_seed.yaml)
#   migrations.py    - Legacy status rewrite
#   reducer.py       - Offline in-memory board state
#   local_storage.py - File persistence for the offline board
#   stt.py           - SpeechCore speech-to-text client
#   config.py        - YAML + environment configuration
