import logging

import pytest


@pytest.fixture(autouse=True, scope="session")
def _quiet_lazymake_logger():
    # CliRunner swaps sys.stderr per invocation; a StreamHandler created
    # inside one would keep writing to a closed stream afterwards.
    logger = logging.getLogger("lazymake")
    handler = logging.NullHandler()
    logger.addHandler(handler)
    yield
    logger.removeHandler(handler)
