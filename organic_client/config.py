"""Configuration for the API client, persisted as JSON next to the package."""

import json
import os
from typing import Any, Dict, Optional


class Config:

    def __init__(self, config_file: str = None):
        self.config_file = config_file or os.path.join(
            os.path.dirname(__file__), 'config.json'
        )
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    self._config = json.load(f)
            except (OSError, ValueError):
                # corrupted file: start over with defaults
                self._config = {}
        else:
            self._config = {}

    def save(self) -> None:
        os.makedirs(os.path.dirname(self.config_file) or '.', exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump(self._config, f, indent=2)

    @property
    def server_url(self) -> str:
        return os.getenv('ORGANIC_SERVER_URL') or self._config.get('server_url', 'http://localhost:8000')

    @server_url.setter
    def server_url(self, value: str):
        self._config['server_url'] = value
        self.save()

    @property
    def email(self) -> Optional[str]:
        return self._config.get('email')

    @email.setter
    def email(self, value: str):
        self._config['email'] = value
        self.save()

    @property
    def timezone(self) -> Optional[str]:
        return self._config.get('timezone')

    @timezone.setter
    def timezone(self, value: str):
        self._config['timezone'] = value
        self.save()
