"""
Task subsystem.

Components:
- task_models.py: data structures (ServerTask, LocalTask, TaskCollection) and wire mapping
- task_cache.py: optimistic per-user cache in front of the remote task API
"""
