"""
================================================================================
Autotest Tools
================================================================================

Shared infrastructure for the compose acceptance harness.

Modules:
    - common: Shared configuration and logging utilities
    - report_tools: Allure attachments and report generation

Example:
    from autotest_tools.common import init_logger
    from autotest_tools.report_tools.allure_utils import attach_container_logs

    init_logger(level="DEBUG")
    attach_container_logs("secretscontainer", compose.logs("secretscontainer"))

================================================================================
"""

__version__ = "1.0.0"

__all__ = [
    "common",
    "report_tools",
]
