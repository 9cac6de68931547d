"""Session-scoped coverage data store.

Every read and write of runtime coverage state goes through
``CoverageStore``. Each mutator checks the coverage invariants before it
writes: non-executable lines never become executed, ``covered`` needs
``executed``, a block needs an executed line in its range, flags only move
from false to true. Rejected writes return ``False`` rather than raising so
collectors on the hot path never see an exception for a spurious event.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import replace

from tracecov.analysis.analyzer import StaticAnalyzer
from tracecov.analysis.models import BlockInfo, CodeMap, ConditionInfo, FunctionInfo
from tracecov.config.constants import ROOT_BLOCK_ID
from tracecov.core.errors import ValidationError
from tracecov.core.logging import get_logger
from tracecov.store.models import (
    BlockState,
    ConditionState,
    FileView,
    FunctionState,
    LineState,
    SourceFile,
)
from tracecov.store.paths import normalize_path, read_file

log = get_logger(__name__)


class CoverageStore:
    """Mutable coverage state for one session.

    Paths given to any method are normalised on entry, so two spellings of
    one physical file always resolve to the same entry.
    """

    def __init__(self, analyzer: StaticAnalyzer | None = None) -> None:
        self.analyzer = analyzer or StaticAnalyzer()
        self._files: dict[str, SourceFile] = {}
        self._untracked: dict[str, str] = {}
        self._frozen = False
        self.late_writes = 0

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _key(self, path: str | os.PathLike[str]) -> str:
        return normalize_path(path)

    def _file(self, path: str | os.PathLike[str]) -> SourceFile:
        key = self._key(path)
        entry = self._files.get(key)
        if entry is None:
            raise ValidationError.unknown_file(key)
        return entry

    def has_file(self, path: str | os.PathLike[str]) -> bool:
        return self._key(path) in self._files

    def initialize_file(
        self,
        path: str | os.PathLike[str],
        source: str | None = None,
        code_map: CodeMap | None = None,
    ) -> FileView:
        """Create the entry for ``path`` if it does not exist yet.

        Idempotent: a known file is returned unchanged, whatever ``source``
        says. The source is read from disk when not given.

        Raises:
            SourceReadError: ``source`` is None and the file cannot be read.
        """
        key = self._key(path)
        entry = self._files.get(key)
        if entry is None:
            if source is None:
                source = read_file(key)
            if code_map is None:
                code_map = self.analyzer.analyze(key, source)
            entry = SourceFile.from_code_map(key, source, code_map)
            self._files[key] = entry
            self._untracked.pop(key, None)
            log.debug(
                "file_initialized",
                path=key,
                lines=code_map.line_count,
                strategy=code_map.strategy.value,
            )
        return self._view(entry)

    def _view(self, entry: SourceFile) -> FileView:
        return FileView(
            path=entry.path,
            line_count=entry.line_count,
            strategy=entry.strategy,
            fallback_reason=entry.code_map.fallback_reason,
            code_map=entry.code_map,
        )

    def get_file(self, path: str | os.PathLike[str]) -> FileView:
        return self._view(self._file(path))

    def iter_files(self) -> Iterator[str]:
        """Canonical keys of every tracked file, sorted."""
        return iter(sorted(self._files))

    def get_source(self, path: str | os.PathLike[str]) -> str:
        return self._file(path).source

    def mark_untracked(self, path: str | os.PathLike[str], reason: str) -> None:
        key = self._key(path)
        if key not in self._files:
            self._untracked[key] = reason

    def is_untracked(self, path: str | os.PathLike[str]) -> bool:
        return self._key(path) in self._untracked

    @property
    def untracked(self) -> dict[str, str]:
        return dict(self._untracked)

    # ------------------------------------------------------------------
    # Reads (copies; callers never hold live state)
    # ------------------------------------------------------------------

    def _line(self, entry: SourceFile, line: int) -> LineState:
        state = entry.lines.get(line)
        if state is None:
            raise ValidationError.line_out_of_range(entry.path, line, entry.line_count)
        return state

    def _block(self, entry: SourceFile, block_id: int) -> BlockState:
        state = entry.blocks.get(block_id)
        if state is None:
            raise ValidationError.unknown_block(entry.path, block_id)
        return state

    def _condition(self, entry: SourceFile, condition_id: int) -> ConditionState:
        state = entry.conditions.get(condition_id)
        if state is None:
            raise ValidationError.unknown_condition(entry.path, condition_id)
        return state

    def _function(self, entry: SourceFile, function_id: int) -> FunctionState:
        state = entry.functions.get(function_id)
        if state is None:
            raise ValidationError.unknown_function(entry.path, function_id)
        return state

    def get_line(self, path: str | os.PathLike[str], line: int) -> LineState:
        return replace(self._line(self._file(path), line))

    def get_block(self, path: str | os.PathLike[str], block_id: int) -> BlockState:
        state = self._block(self._file(path), block_id)
        return replace(state, children=list(state.children))

    def get_condition(self, path: str | os.PathLike[str], condition_id: int) -> ConditionState:
        return replace(self._condition(self._file(path), condition_id))

    def get_function(self, path: str | os.PathLike[str], function_id: int) -> FunctionState:
        return replace(self._function(self._file(path), function_id))

    def lines(self, path: str | os.PathLike[str]) -> list[LineState]:
        entry = self._file(path)
        return [replace(entry.lines[n]) for n in sorted(entry.lines)]

    def blocks(self, path: str | os.PathLike[str]) -> list[BlockState]:
        entry = self._file(path)
        return [
            replace(entry.blocks[b], children=list(entry.blocks[b].children))
            for b in sorted(entry.blocks)
        ]

    def conditions(self, path: str | os.PathLike[str]) -> list[ConditionState]:
        entry = self._file(path)
        return [replace(entry.conditions[c]) for c in sorted(entry.conditions)]

    def functions(self, path: str | os.PathLike[str]) -> list[FunctionState]:
        entry = self._file(path)
        return [replace(entry.functions[f]) for f in sorted(entry.functions)]

    def pending_entries(self, path: str | os.PathLike[str]) -> dict[int, int]:
        return dict(self._file(path).pending_entries)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Stop accepting runtime writes; later ones are ignored and logged."""
        self._frozen = True

    def _late(self, operation: str, path: str, item: int) -> bool:
        if not self._frozen:
            return False
        self.late_writes += 1
        log.debug("late_write_ignored", operation=operation, path=path, item=item)
        return True

    def reset(self, discard_structure: bool = False) -> None:
        """Zero every runtime field; optionally forget the files themselves."""
        self._frozen = False
        self.late_writes = 0
        if discard_structure:
            self._files.clear()
            self._untracked.clear()
            self.analyzer.clear_cache()
            return
        for entry in self._files.values():
            entry.populate()

    # ------------------------------------------------------------------
    # Line mutators
    # ------------------------------------------------------------------

    def set_line_executed(
        self, path: str | os.PathLike[str], line: int, count: int = 1
    ) -> bool:
        """Mark ``line`` executed and add ``count`` to its counter.

        Returns False (and writes nothing) for non-executable lines or a
        frozen store.
        """
        entry = self._file(path)
        state = self._line(entry, line)
        if self._late("set_line_executed", entry.path, line):
            return False
        if not state.executable:
            return False
        if not state.executed:
            state.executed = True
            for block_id in (ROOT_BLOCK_ID, *state.block_ids):
                block = entry.blocks.get(block_id)
                if block is not None and block.is_evidence(line):
                    block.evidence += 1
        state.execution_count += count
        return True

    def propagate_to_blocks(self, path: str | os.PathLike[str], line: int) -> None:
        """Mark every block that an executed ``line`` proves ran, root included.

        A pending entry on such a block is counted now.
        """
        entry = self._file(path)
        state = self._line(entry, line)
        if self._frozen or not state.executed:
            return
        pending = entry.pending_entries
        for block_id in (ROOT_BLOCK_ID, *state.block_ids):
            block = entry.blocks.get(block_id)
            if block is None or not block.is_evidence(line):
                continue
            block.executed = True
            if pending and pending.pop(block_id, 0):
                block.execution_count += 1

    def set_line_covered(self, path: str | os.PathLike[str], line: int) -> bool:
        entry = self._file(path)
        state = self._line(entry, line)
        if self._late("set_line_covered", entry.path, line):
            return False
        if not state.executed:
            return False
        state.covered = True
        return True

    # ------------------------------------------------------------------
    # Block mutators
    # ------------------------------------------------------------------

    def has_block_evidence(self, path: str | os.PathLike[str], block_id: int) -> bool:
        return self._block(self._file(path), block_id).evidence > 0

    def set_block_executed(
        self, path: str | os.PathLike[str], block_id: int, count: int = 0
    ) -> bool:
        """Mark a block executed, adding ``count`` entries.

        Refused until an executed line proves the block ran.
        """
        entry = self._file(path)
        block = self._block(entry, block_id)
        if self._late("set_block_executed", entry.path, block_id):
            return False
        if block.evidence <= 0:
            return False
        block.executed = True
        block.execution_count += count
        return True

    def defer_block_entry(self, path: str | os.PathLike[str], block_id: int) -> None:
        """Record an entry that counts once an evidence line of the block runs.

        Entries do not accumulate: re-entering before any evidence replaces
        the waiting one (a guard that was false leaves nothing to count).
        """
        entry = self._file(path)
        self._block(entry, block_id)
        if self._late("defer_block_entry", entry.path, block_id):
            return
        entry.pending_entries[block_id] = 1

    def take_pending_entries(self, path: str | os.PathLike[str], block_id: int) -> int:
        return self._file(path).pending_entries.pop(block_id, 0)

    def set_block_covered(self, path: str | os.PathLike[str], block_id: int) -> bool:
        entry = self._file(path)
        block = self._block(entry, block_id)
        if self._late("set_block_covered", entry.path, block_id):
            return False
        if not block.executed:
            return False
        block.covered = True
        return True

    def add_block(self, path: str | os.PathLike[str], block: BlockInfo) -> None:
        """Register a block discovered after analysis.

        Its parent may not exist yet; the link stays pending until
        reconciliation, which relinks it to the root if it never appears.
        """
        entry = self._file(path)
        if block.block_id in entry.blocks:
            raise ValidationError.duplicate_id(entry.path, "block", block.block_id)
        if not (1 <= block.start_line <= block.end_line <= entry.line_count):
            raise ValidationError.line_out_of_range(entry.path, block.end_line, entry.line_count)
        state = BlockState(
            block_id=block.block_id,
            kind=block.kind,
            start_line=block.start_line,
            end_line=block.end_line,
            parent_id=block.parent_id,
            entry_line=block.entry_line,
        )
        for number in range(block.start_line, block.end_line + 1):
            line = entry.lines[number]
            line.block_ids = (*line.block_ids, block.block_id)
            if line.executed and state.is_evidence(number):
                state.evidence += 1
        entry.blocks[block.block_id] = state
        parent = entry.blocks.get(block.parent_id) if block.parent_id is not None else None
        if parent is not None and block.block_id not in parent.children:
            parent.children.append(block.block_id)

    def relink_block(self, path: str | os.PathLike[str], block_id: int, parent_id: int) -> None:
        """Move a block under ``parent_id`` (reconciliation only)."""
        entry = self._file(path)
        block = self._block(entry, block_id)
        new_parent = self._block(entry, parent_id)
        old = entry.blocks.get(block.parent_id) if block.parent_id is not None else None
        if old is not None and block_id in old.children:
            old.children.remove(block_id)
        block.parent_id = parent_id
        if block_id not in new_parent.children:
            new_parent.children.append(block_id)

    # ------------------------------------------------------------------
    # Function mutators
    # ------------------------------------------------------------------

    def set_function_executed(
        self, path: str | os.PathLike[str], function_id: int, count: int = 1
    ) -> bool:
        entry = self._file(path)
        state = self._function(entry, function_id)
        if self._late("set_function_executed", entry.path, function_id):
            return False
        state.executed = True
        state.execution_count += count
        return True

    def set_function_covered(self, path: str | os.PathLike[str], function_id: int) -> bool:
        entry = self._file(path)
        state = self._function(entry, function_id)
        if self._late("set_function_covered", entry.path, function_id):
            return False
        if not state.executed:
            return False
        state.covered = True
        return True

    def add_function(self, path: str | os.PathLike[str], function: FunctionInfo) -> None:
        entry = self._file(path)
        if function.function_id in entry.functions:
            raise ValidationError.duplicate_id(entry.path, "function", function.function_id)
        entry.functions[function.function_id] = FunctionState(
            function_id=function.function_id,
            name=function.name,
            start_line=function.start_line,
            end_line=function.end_line,
        )

    # ------------------------------------------------------------------
    # Condition mutators
    # ------------------------------------------------------------------

    def set_condition_outcome(
        self, path: str | os.PathLike[str], condition_id: int, outcome: bool
    ) -> bool:
        """Record one evaluation of a condition and which way it went."""
        entry = self._file(path)
        state = self._condition(entry, condition_id)
        if self._late("set_condition_outcome", entry.path, condition_id):
            return False
        if outcome:
            state.true_outcome_executed = True
        else:
            state.false_outcome_executed = True
        state.execution_count += 1
        return True

    def mark_condition_executed(
        self, path: str | os.PathLike[str], condition_id: int
    ) -> bool:
        """Record an evaluation whose outcome is unknown."""
        entry = self._file(path)
        state = self._condition(entry, condition_id)
        if self._late("mark_condition_executed", entry.path, condition_id):
            return False
        state.execution_count += 1
        return True

    def add_condition(self, path: str | os.PathLike[str], condition: ConditionInfo) -> None:
        entry = self._file(path)
        if condition.condition_id in entry.conditions:
            raise ValidationError.duplicate_id(entry.path, "condition", condition.condition_id)
        self._block(entry, condition.block_id)
        entry.conditions[condition.condition_id] = ConditionState(
            condition_id=condition.condition_id,
            kind=condition.kind,
            span=condition.span,
            expression=condition.expression,
            parent_id=condition.parent_id,
            components=condition.components,
            block_id=condition.block_id,
        )

    def relink_condition(
        self, path: str | os.PathLike[str], condition_id: int, parent_id: int | None
    ) -> None:
        """Detach a condition from a missing or cyclic parent (reconciliation only)."""
        entry = self._file(path)
        state = self._condition(entry, condition_id)
        old = entry.conditions.get(state.parent_id) if state.parent_id is not None else None
        if old is not None and condition_id in old.components:
            old.components = tuple(c for c in old.components if c != condition_id)
        state.parent_id = parent_id

    # ------------------------------------------------------------------
    # Corrections (reconciliation only)
    # ------------------------------------------------------------------

    def strip_line(self, path: str | os.PathLike[str], line: int) -> bool:
        """Clear runtime flags of a line; returns whether anything was set."""
        entry = self._file(path)
        state = self._line(entry, line)
        had = state.executed or state.covered or state.execution_count > 0
        if state.executed:
            for block_id in (ROOT_BLOCK_ID, *state.block_ids):
                block = entry.blocks.get(block_id)
                if block is not None and block.is_evidence(line) and block.evidence > 0:
                    block.evidence -= 1
        state.executed = False
        state.covered = False
        state.execution_count = 0
        return had

    def clear_block_executed(self, path: str | os.PathLike[str], block_id: int) -> None:
        block = self._block(self._file(path), block_id)
        block.executed = False
        block.covered = False
        block.execution_count = 0

    def recount_block_evidence(self, path: str | os.PathLike[str], block_id: int) -> int:
        entry = self._file(path)
        block = self._block(entry, block_id)
        block.evidence = sum(
            1
            for number in range(block.start_line, block.end_line + 1)
            if number in entry.lines
            and entry.lines[number].executed
            and block.is_evidence(number)
        )
        return block.evidence

    def force_line_executed(self, path: str | os.PathLike[str], line: int) -> bool:
        """Give a covered-but-unexecuted line its missing execution."""
        entry = self._file(path)
        state = self._line(entry, line)
        if not state.executable or state.executed:
            return False
        frozen, self._frozen = self._frozen, False
        try:
            return self.set_line_executed(entry.path, line)
        finally:
            self._frozen = frozen
