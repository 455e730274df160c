from __future__ import annotations
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from errors import StackoweyStreamError


LINE_FEED = 0x0A

InputProvider = Callable[..., str]
OutputSink = Callable[[str], None]


class IOChannel:
    """Line-buffered input queue and output accumulator.

    Input lines are queued by the embedding driver and consumed one per
    ``?``. When the queue runs dry the optional *input_provider* is asked for
    a line (with *prompt* as its only argument when a prompt is configured).
    Output is collected line by line; every character is also forwarded to
    *output_sink* as soon as it is written.
    """

    def __init__(
        self,
        *,
        input_provider: Optional[InputProvider] = None,
        prompt: Optional[str] = None,
        output_sink: Optional[OutputSink] = None,
    ) -> None:
        self.input_provider = input_provider
        self.prompt = prompt
        self.output_sink = output_sink
        self.pending: Deque[str] = deque()
        self.lines: List[str] = []
        self.io_log: List[Dict[str, Any]] = []

    @property
    def interactive(self) -> bool:
        return self.input_provider is not None

    def feed(self, text: str) -> None:
        for line in str(text).split("\n"):
            self.pending.append(line)

    def read_line(self) -> Optional[str]:
        """Return the next input line, or None when no input is available."""
        if self.pending:
            line = self.pending.popleft()
            self.io_log.append({"event": "INPUT", "text": line, "source": "queue"})
            return line
        if self.input_provider is None:
            return None
        try:
            if self.prompt is None:
                line = self.input_provider()
            else:
                line = self.input_provider(self.prompt)
        except EOFError:
            return None
        except OSError as exc:
            raise StackoweyStreamError(f"Failed to read input: {exc}", writing=False) from exc
        line = str(line)
        record: Dict[str, Any] = {"event": "INPUT", "text": line, "source": "interactive"}
        if self.prompt is not None:
            record["prompt"] = self.prompt
        self.io_log.append(record)
        return line

    def write(self, code: int) -> str:
        char = chr(int(code) & 0xFFFF)
        if not self.lines:
            self.lines.append("")
        if ord(char) == LINE_FEED:
            self.lines.append("")
        else:
            self.lines[-1] += char
        self.io_log.append({"event": "OUTPUT", "code": int(code)})
        if self.output_sink is not None:
            try:
                self.output_sink(char)
            except OSError as exc:
                raise StackoweyStreamError(f"Failed to write output: {exc}", writing=True) from exc
        return char

    def drain(self) -> str:
        text = "\n".join(self.lines)
        self.lines = []
        return text

    def clear(self) -> None:
        self.pending.clear()
        self.lines = []
        self.io_log = []

    def queued(self) -> Tuple[str, ...]:
        return tuple(self.pending)
