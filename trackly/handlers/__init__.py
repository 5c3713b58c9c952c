"""
Handlers package
"""

from .command_handlers import ICommandHandler
from .command_factory import CommandFactory

__all__ = ['ICommandHandler', 'CommandFactory']
