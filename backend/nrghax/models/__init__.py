# This file makes the 'models' directory a Python package.

from .content import Level, Hack, Routine, RoutineHack
from .user_progress import UserProgress
from .user_hack_check import UserHackCheck
from .prerequisite import PrerequisiteEdge
from .migration_receipt import MigrationReceipt
from .user_role import UserRole
