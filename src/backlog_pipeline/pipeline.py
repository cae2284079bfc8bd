"""Single-task build run as a LangGraph state machine.

    dispatch -> generate -> parse -> apply -> validate -> publish -> complete
        |                     |
        +--> END (empty)      +--> END (no edits)

Nothing about a run is persisted until ``complete`` calls ``BacklogStore.advance``, so a
fatal error in any earlier node leaves the task pending for the next invocation. A progress
note written by this run is removed again when validation blocks or publishing fails. Errors
raised inside a node propagate out of ``BuildPipeline.run`` unchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .applier import ChangeApplier
from .backlog_store import BacklogStore
from .errors import QueueEmpty, ValidationBlocked
from .git_ops import Publisher
from .llm import GenerationClient
from .models import FileEdit, PublishResult, RunResult, RunState, Task, ValidationWarning
from .progress import ProgressLogger
from .prompts import PromptBuilder
from .response_parser import ResponseParser
from .settings import RuntimeSettings
from .validator import Validator

logger = logging.getLogger(__name__)

RESPONSE_PREVIEW_CHARS = 300


class BuildState(TypedDict, total=False):
    run_state: RunState
    task: Task | None
    prompt: str
    response: str
    edits: list[FileEdit]
    edits_applied: int
    warnings: list[ValidationWarning]
    publish_result: PublishResult | None
    progress_note: Path | None


def _current_task(state: BuildState) -> Task:
    task = state.get("task")
    if task is None:
        raise RuntimeError("no task dispatched for this run")
    return task


class BuildPipeline:
    """Builds the head task of the backlog, end to end, at most once per ``run``."""

    def __init__(
        self,
        *,
        store: BacklogStore,
        prompt_builder: PromptBuilder,
        client: GenerationClient,
        parser: ResponseParser,
        applier: ChangeApplier,
        validator: Validator,
        publisher: Publisher,
        progress: ProgressLogger,
        repo_root: Path,
        validation_policy: str = "warn",
    ) -> None:
        self.store = store
        self.prompt_builder = prompt_builder
        self.client = client
        self.parser = parser
        self.applier = applier
        self.validator = validator
        self.publisher = publisher
        self.progress = progress
        self.repo_root = repo_root
        self.validation_policy = validation_policy
        self.graph = self._build_graph().compile()

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        client: GenerationClient | None = None,
    ) -> "BuildPipeline":
        root = settings.workspace_root_path
        return cls(
            store=BacklogStore(settings.backlog_file()),
            prompt_builder=PromptBuilder.from_settings(settings),
            client=client if client is not None else GenerationClient.from_settings(settings),
            parser=ResponseParser(),
            applier=ChangeApplier(root),
            validator=Validator.from_settings(settings),
            publisher=Publisher.from_settings(settings),
            progress=ProgressLogger(settings.progress_path()),
            repo_root=root,
            validation_policy=settings.validation_policy,
        )

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(BuildState)
        graph.add_node("dispatch", self._dispatch_node)
        graph.add_node("generate", self._generate_node)
        graph.add_node("parse", self._parse_node)
        graph.add_node("apply", self._apply_node)
        graph.add_node("validate", self._validate_node)
        graph.add_node("publish", self._publish_node)
        graph.add_node("complete", self._complete_node)

        graph.add_edge(START, "dispatch")
        graph.add_conditional_edges(
            "dispatch",
            self._dispatch_route,
            {
                "generate": "generate",
                "end": END,
            },
        )
        graph.add_edge("generate", "parse")
        graph.add_conditional_edges(
            "parse",
            self._parse_route,
            {
                "apply": "apply",
                "end": END,
            },
        )
        graph.add_edge("apply", "validate")
        graph.add_edge("validate", "publish")
        graph.add_edge("publish", "complete")
        graph.add_edge("complete", END)
        return graph

    def _dispatch_node(self, _state: BuildState) -> dict[str, Any]:
        backlog = self.store.load()
        try:
            task = self.store.peek_next()
        except QueueEmpty:
            logger.info("All tasks completed")
            return {"run_state": RunState.QUEUE_EMPTY, "task": None}

        logger.info("Building task %s: %s", task.key, task.title)
        prompt = self.prompt_builder.build(task, backlog, repo_root=self.repo_root)
        return {"run_state": RunState.DISPATCHED, "task": task, "prompt": prompt}

    def _dispatch_route(self, state: BuildState) -> str:
        if state.get("run_state") == RunState.DISPATCHED:
            return "generate"
        return "end"

    def _generate_node(self, state: BuildState) -> dict[str, Any]:
        response = self.client.generate(state["prompt"])
        logger.info("Response preview: %s", response[:RESPONSE_PREVIEW_CHARS])
        return {"run_state": RunState.GENERATED, "response": response}

    def _parse_node(self, state: BuildState) -> dict[str, Any]:
        edits = self.parser.parse(state["response"])
        if not edits:
            logger.warning("No valid changes in response; skipping commit")
            return {"run_state": RunState.NO_CHANGES, "edits": []}
        logger.debug("Parsed %d edit(s)", len(edits))
        return {"run_state": RunState.PARSED, "edits": edits}

    def _parse_route(self, state: BuildState) -> str:
        if state.get("run_state") == RunState.PARSED:
            return "apply"
        return "end"

    def _apply_node(self, state: BuildState) -> dict[str, Any]:
        applied = self.applier.apply(state["edits"])
        task = _current_task(state)
        # Written before publishing so the note lands in the task's commit.
        note = self.progress.record(task, state["response"])
        return {"run_state": RunState.APPLIED, "edits_applied": applied, "progress_note": note}

    def _discard_progress_note(self, state: BuildState) -> None:
        note = state.get("progress_note")
        if note is not None:
            self.progress.discard(note)

    def _validate_node(self, state: BuildState) -> dict[str, Any]:
        warnings = self.validator.validate()
        if warnings and self.validation_policy == "block":
            self._discard_progress_note(state)
            raise ValidationBlocked(warnings)
        return {"run_state": RunState.VALIDATED, "warnings": warnings}

    def _publish_node(self, state: BuildState) -> dict[str, Any]:
        task = _current_task(state)
        try:
            result = self.publisher.publish(task)
        except Exception:
            self._discard_progress_note(state)
            raise
        return {"run_state": RunState.PUBLISHED, "publish_result": result}

    def _complete_node(self, state: BuildState) -> dict[str, Any]:
        task = _current_task(state)
        self.store.advance(task)
        logger.info("Task %s complete", task.key)
        return {"run_state": RunState.COMPLETED}

    def run(self) -> RunResult:
        final = self.graph.invoke({"run_state": RunState.PENDING})
        return RunResult(
            state=final["run_state"],
            task=final.get("task"),
            edits_applied=final.get("edits_applied", 0),
            warnings=list(final.get("warnings", [])),
            publish=final.get("publish_result"),
        )
