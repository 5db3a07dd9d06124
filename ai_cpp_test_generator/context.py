"""
Run context - Debug flag and output sink passed explicitly through every component
"""

import logging
import os
import sys
import threading
from typing import Optional, TextIO

LOGGER_NAME = "ai_cpp_test_generator"

_LEVELS = {
    'INFO': logging.INFO,
    'PASS': logging.INFO,
    'WARN': logging.WARNING,
    'ERROR': logging.ERROR,
    'DEBUG': logging.DEBUG,
}


class RunContext:
    """Carries the debug flag and the output sink for one run.

    Every line is printed to the sink with a status tag, the way the CLI has
    always reported progress, and mirrored to the ``ai_cpp_test_generator``
    logger so ``--log-file`` captures the same stream.
    """

    def __init__(self, debug: bool = False, sink: Optional[TextIO] = None,
                 logger: Optional[logging.Logger] = None):
        self.debug_enabled = debug
        self.sink = sink if sink is not None else sys.stdout
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, verbose: bool = False, sink: Optional[TextIO] = None) -> 'RunContext':
        """Build a context whose debug flag honours --verbose or DEBUG=true"""
        debug = verbose or os.getenv('DEBUG', '').lower() == 'true'
        return cls(debug=debug, sink=sink)

    def _emit(self, tag: str, message: str):
        with self._lock:
            print(f"[{tag}] {message}", file=self.sink, flush=True)
        self.logger.log(_LEVELS[tag], message)

    def info(self, message: str):
        self._emit('INFO', message)

    def success(self, message: str):
        self._emit('PASS', message)

    def warn(self, message: str):
        self._emit('WARN', message)

    def error(self, message: str):
        self._emit('ERROR', message)

    def debug(self, message: str):
        if self.debug_enabled:
            self._emit('DEBUG', message)

    def write(self, text: str):
        """Print a raw block (summaries, tool output) without a tag"""
        with self._lock:
            print(text, file=self.sink, flush=True)
