from importlib.metadata import version

from .applier import ChangeApplier
from .backlog_store import BacklogStore, atomic_write_text
from .errors import (
    CorruptState,
    GenerationCancelled,
    PipelineError,
    PublishFailure,
    QueueEmpty,
    RateLimitExceeded,
    TransientRateLimit,
    ValidationBlocked,
    WriteFailure,
)
from .git_ops import GitClient, Publisher, build_commit_message
from .llm import BackoffTimer, GenerationClient, get_chat_model
from .models import Backlog, FileEdit, PublishResult, RunResult, RunState, Task, ValidationWarning
from .pipeline import BuildPipeline
from .progress import ProgressLogger
from .prompts import PromptBuilder
from .response_parser import ResponseParser, parse_response
from .settings import RuntimeSettings
from .validator import ValidationCommand, Validator


def get_version() -> str:
    try:
        return version("backlog-pipeline")
    except Exception:
        return "0.0.0"


__all__ = [
    "BackoffTimer",
    "Backlog",
    "BacklogStore",
    "BuildPipeline",
    "ChangeApplier",
    "CorruptState",
    "FileEdit",
    "GenerationCancelled",
    "GenerationClient",
    "GitClient",
    "PipelineError",
    "ProgressLogger",
    "PromptBuilder",
    "PublishFailure",
    "PublishResult",
    "Publisher",
    "QueueEmpty",
    "RateLimitExceeded",
    "ResponseParser",
    "RunResult",
    "RunState",
    "RuntimeSettings",
    "Task",
    "TransientRateLimit",
    "ValidationBlocked",
    "ValidationCommand",
    "ValidationWarning",
    "Validator",
    "WriteFailure",
    "atomic_write_text",
    "build_commit_message",
    "get_chat_model",
    "parse_response",
]
