"""QML-facing application facade, sessions and state objects.

- Single command entry: backend.dispatch(cmd, payload)
- UI binding via state QObjects (backend.compress / backend.resize)
- Python→QML notifications via backend.event
- Artifact handles rendered through image://artifact/<key>
"""
