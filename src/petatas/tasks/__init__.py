"""
Task domain types.

- task_models.py: Task, TaskStatus, TimerState (+ validation and stored form)
"""
