"""Execution event sink protocol."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ExecutionEventSink(Protocol):
    """Receiver of live execution signals.

    Both collectors drive one sink. ``key`` is a normalised path that the
    sink has already resolved; ids are the ones in the file's ``CodeMap``.
    Implementations must never raise into the code under measurement.
    """

    def on_line(self, key: str, line: int) -> None:
        """An executable line ran."""
        ...

    def on_call(self, key: str, function_id: int) -> None:
        """A function was entered."""
        ...

    def on_return(self, key: str, function_id: int) -> None:
        """A function returned or unwound."""
        ...

    def on_condition(self, key: str, condition_id: int, outcome: bool | None) -> None:
        """A guard (or one of its components) was evaluated.

        ``outcome`` is None when the collector saw the evaluation but not
        its result.
        """
        ...
