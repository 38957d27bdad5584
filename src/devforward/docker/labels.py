"""
Devcontainer label helpers.

The devcontainer CLI labels each container it creates with the workspace
folder, the config file it was built from, and a JSON metadata blob merged
from the image and devcontainer.json.
"""

import json

from devforward.utils.logger import get_logger

logger = get_logger(__name__)

LABEL_LOCAL_FOLDER = "devcontainer.local_folder"
LABEL_CONFIG_FILE = "devcontainer.config_file"
LABEL_METADATA = "devcontainer.metadata"


def label_filters(workspace: str, config_file: str) -> list[str]:
    """Label filters matching the devcontainer of a workspace."""
    return [
        f"{LABEL_LOCAL_FOLDER}={workspace}",
        f"{LABEL_CONFIG_FILE}={config_file}",
    ]


def remote_user_from_metadata(metadata: str | None) -> str:
    """
    Extract the remote user from a ``devcontainer.metadata`` label value.

    The label holds a JSON list of objects; the first object with a non-empty
    ``remoteUser`` wins.

    Returns:
        The remote user, or an empty string if none is configured.

    Raises:
        ValueError: If the label is not a JSON list.
    """
    if not metadata:
        return ""

    items = json.loads(metadata)
    if not isinstance(items, list):
        raise ValueError(f"{LABEL_METADATA} is not a JSON list")

    for item in items:
        if not isinstance(item, dict):
            continue
        remote_user = item.get("remoteUser")
        if remote_user:
            return str(remote_user)
    return ""
