"""ltc - command line client for lattice clusters."""

from ltc.app_examiner import AppExaminer, AppInfo, CellInfo, InstanceInfo
from ltc.app_runner import AppRunner, CreateAppParams
from ltc.config import BlobTargetInfo, Config, FilePersister, MemPersister
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.receptor_client import ReceptorClient
from ltc.task_examiner import TaskExaminer
from ltc.task_runner import TaskRunner

__version__ = "0.1.0"

__all__ = [
    # Config
    "BlobTargetInfo",
    "Config",
    "FilePersister",
    "MemPersister",
    # Control plane
    "ReceptorClient",
    "AppRunner",
    "CreateAppParams",
    "AppExaminer",
    "AppInfo",
    "CellInfo",
    "InstanceInfo",
    "TaskExaminer",
    "TaskRunner",
    # Process
    "ExitCode",
    "ExitHandler",
]
