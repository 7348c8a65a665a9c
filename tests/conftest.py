import os
import warnings

# Ignore warnings from third-party ODM internals
warnings.filterwarnings("ignore", category=DeprecationWarning, module="beanie.*")

# Keep tests off real infrastructure regardless of env.local
os.environ.update({"DEMO_MODE": "true", "LOGFIRE_ENABLE": "false"})

from tests.fixtures.live_fixtures import *  # noqa: E402, F403
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
