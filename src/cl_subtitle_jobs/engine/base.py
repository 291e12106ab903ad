"""Transcoding engine protocols.

An engine is started once per job and reports back through an
`EngineListener`. The listener receives non-terminal signals (`on_start`,
`on_progress`) and terminal ones (`on_success`, `on_failure`). Engines are not
trusted to be well behaved: progress may regress or be skipped, and both
terminal callbacks may fire. Consumers enforce ordering themselves.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable


class EngineListener(Protocol):
    def on_start(self) -> None: ...

    def on_progress(self, percent: float) -> None: ...

    def on_success(self) -> None: ...

    def on_failure(self, reason: str) -> None: ...


@runtime_checkable
class EngineHandle(Protocol):
    """Handle on a running conversion."""

    @property
    def done(self) -> bool: ...

    def cancel(self) -> None:
        """Stop the conversion. No listener callback is guaranteed afterwards."""
        ...

    async def wait(self) -> None:
        """Wait until the engine has stopped emitting callbacks."""
        ...


@runtime_checkable
class TranscodingEngine(Protocol):
    async def start(
        self,
        input_path: Path,
        output_path: Path,
        listener: EngineListener,
    ) -> EngineHandle:
        """Launch a conversion and return once it is running.

        Raises:
            EngineStartError: If the conversion cannot be started at all
        """
        ...
