"""Automation engine components.

Provides:
- Settings loaded from .env
- Structured logging
- The workflow package (rules, conditions, actions, orchestration)
- A small CLI surface
"""
