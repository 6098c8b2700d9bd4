"""
Settings loaded from environment variables.
"""

import os


class Settings:
    """Runtime settings for notebook-core."""

    def __init__(self):
        # Language used when neither the cell nor the notebook declares one
        self.default_language = os.environ.get("NOTEBOOK_CORE_DEFAULT_LANGUAGE", "python")

        # Knox gateway port used when rewriting cluster proxy links
        self.gateway_port = int(os.environ.get("NOTEBOOK_CORE_GATEWAY_PORT", "30443"))

        self.log_level = os.environ.get("NOTEBOOK_CORE_LOG_LEVEL", "WARNING").upper()


settings = Settings()
