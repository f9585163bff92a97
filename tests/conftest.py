import logging

import pytest

from plana.logging import SafeStreamHandler


@pytest.fixture(autouse=True)
def _drop_stream_handlers():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, SafeStreamHandler):
            root.removeHandler(handler)
