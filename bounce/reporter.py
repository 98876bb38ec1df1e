import sys
from typing import Optional, TextIO


class Reporter:
    """
    Line sink for the designated root's progress output.

    Every line is flushed as soon as it is written so that anyone tailing the
    output sees rounds as they start.
    """

    def __init__(self, stream: TextIO, owns_stream: bool = False):
        self.stream = stream
        self._owns_stream = owns_stream

    @classmethod
    def open(cls, path: Optional[str] = None) -> "Reporter":
        """Write to ``path`` (truncated), or to stdout when ``path`` is None."""
        if path is None:
            return cls(sys.stdout)
        return cls(open(path, "w"), owns_stream=True)

    def emit(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()

    def close(self) -> None:
        if self._owns_stream and not self.stream.closed:
            self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
