"""
Shared Kernel Module
====================

Generic infrastructure shared by the application (logging and the like).

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
