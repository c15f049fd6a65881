from .crud_progress import progress
from .crud_hack_check import user_hack_check
from .crud_prerequisite import prerequisite
from .crud_content import level, hack, routine
from .crud_migration_receipt import migration_receipt
from .crud_role import user_role
