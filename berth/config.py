# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
# Settings come from the environment, optionally completed by a .env file
# in the working directory. The CLI reloads them for the directory given
# with --chdir so that DIR/.env applies. Variables already set in the
# process environment win over the file.
#
# Environment Variables:
# - BERTH_DECLARATION: declaration file name (default berth.yaml)
# - BERTH_STATE_PATH: state file name (default berth.state.json)
# - BERTH_DATA_DIR: working data directory (default .berth)
# - DOCKER_HOST: Docker engine URL (default: docker SDK environment)
# - BERTH_DOCKER_TIMEOUT: Docker API timeout in seconds (default 60)
# - BERTH_LOCK_TIMEOUT: seconds to wait for a held state lock (default 0)
# - BERTH_CHECK_PORTS: check host ports before creating containers (default true)
# - BERTH_VAR_<name>: value for declaration variable <name>
# -----------------------------------------------------------------------------

import os
from pathlib import Path

from dotenv import load_dotenv

PROVIDER_LOCK_FILE = "providers.lock.json"
VARIABLE_ENV_PREFIX = "BERTH_VAR_"


def load_settings(workdir: Path | str | None = None) -> None:
    """Read WORKDIR/.env (cwd by default) into the environment and re-read every setting."""
    global DECLARATION_FILE, STATE_FILE, DATA_DIR, DOCKER_HOST, DOCKER_TIMEOUT
    global LOCK_TIMEOUT_SECONDS, CHECK_PORTS

    load_dotenv(Path(workdir or Path.cwd()) / ".env")

    DECLARATION_FILE = os.getenv("BERTH_DECLARATION", "berth.yaml")
    STATE_FILE = os.getenv("BERTH_STATE_PATH", "berth.state.json")
    DATA_DIR = os.getenv("BERTH_DATA_DIR", ".berth")

    DOCKER_HOST = os.getenv("DOCKER_HOST")
    DOCKER_TIMEOUT = int(os.getenv("BERTH_DOCKER_TIMEOUT", "60"))

    LOCK_TIMEOUT_SECONDS = float(os.getenv("BERTH_LOCK_TIMEOUT", "0"))
    CHECK_PORTS = os.getenv("BERTH_CHECK_PORTS", "true").lower() == "true"


load_settings()
