"""mkvbulk core package.

The package is organized into focused modules:

- **probe**: Reads a file's track table through ``mediainfo``
- **rules**: Decides which tracks survive, in what order and with which flags
- **planner**: Turns a track plan into an ``mkvmerge`` invocation and output path
- **muxer**: Runs the invocation and moves the result into place
- **scheduler**: Discovers files and runs one job per file on a worker pool
- **disposition**: Trashes originals and shuts the host down after the batch
- **config** / **validation**: YAML configuration loading and checking
- **run_summary** / **summary_table**: End-of-batch reporting

The main entry point for a batch is the ``BatchRunner`` class.
"""

from .scheduler import BatchRunner, run_batch
from .version import __version__

__all__ = [
    "__version__",
    "BatchRunner",
    "run_batch",
]
