from .model import EXIT_CANCELLED, EXIT_SPAWN_FAILED, Job, JobHandle, JobState, Sink, Stream
from .orchestrator import CommandNotFound, JobOrchestrator, SpawnFailure
from .command import ACTIONS, build_command
from .xcrc import find_project_root, load_xcrc, parse_xcrc

__all__ = [
    "EXIT_CANCELLED", "EXIT_SPAWN_FAILED", "Job", "JobHandle", "JobState", "Sink", "Stream",
    "CommandNotFound", "JobOrchestrator", "SpawnFailure",
    "ACTIONS", "build_command",
    "find_project_root", "load_xcrc", "parse_xcrc",
]
