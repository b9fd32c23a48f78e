"""Board Automation.

A workflow automation engine for task boards:
- workflows stored as trigger -> conditions -> actions records
- a template catalog of ready-made workflows
- an execution orchestrator with an auditable execution history
- configuration loaded from `.env` and structured logging
"""

__version__ = "0.1.0"

from board_automation.engine.config import AutomationSettings

__all__ = ["__version__", "AutomationSettings"]
