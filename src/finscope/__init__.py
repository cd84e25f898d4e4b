# ABOUTME: Finscope package for tenant-scoped back-office finance
# ABOUTME: Exports create_server function and version info

from finscope.server import create_server

__version__ = "0.1.0"
__all__ = ["create_server", "__version__"]
