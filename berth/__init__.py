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
# BERTH - DECLARATIVE DOCKER PROVISIONER
# -----------------------------------------------------------------------------
# Reads a berth.yaml declaration (an image and a container), compares it
# with the recorded state and reconciles the local Docker engine:
#
#   berth init      -> resolve the Docker provider, write the provider lock
#   berth plan      -> show what would change
#   berth apply     -> make it so (after a literal "yes")
#   berth destroy   -> remove everything that was created
# -----------------------------------------------------------------------------

__version__ = "0.3.0"

from berth.errors import BerthError

__all__ = ["BerthError", "__version__"]
