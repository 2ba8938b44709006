"""Kanban board backend: columns, tasks and task attachments over HTTP."""

__version__ = "0.1.0"
