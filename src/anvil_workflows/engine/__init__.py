"""Workflow execution engine.

Provides:
- Settings loaded from .env
- Structured logging
- A small CLI surface
- Workflow storage, command building and approval-gated execution
"""
