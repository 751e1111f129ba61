"""Chat network adapters."""

from .shell import ShellAdapter

__all__ = ["ShellAdapter"]
