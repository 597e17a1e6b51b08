import os
from dataclasses import dataclass

from pyaml_env import parse_config


class LinkageConfig:
    @dataclass
    class App:
        server_port: int
        log_level: str = "INFO"

        def __post_init__(self):
            # values interpolated from the environment arrive as strings
            self.server_port = int(self.server_port)

    @dataclass
    class Linkage:
        method: str = "generic"
        allow_degenerate: bool = True
        metrics_history_size: int = 100

    @dataclass
    class Pseudonymize:
        hash_length: int = 16
        max_retries: int = 8
        secret: str = ""

    def __init__(self, version, app, linkage=None, pseudonymize=None):
        self.version = version
        self.app = LinkageConfig.App(**app)
        self.linkage = LinkageConfig.Linkage(**(linkage or {}))
        self.pseudonymize = LinkageConfig.Pseudonymize(**(pseudonymize or {}))


current_dir = os.path.dirname(os.path.abspath(__file__))
config_path = os.path.join(current_dir, '..', 'config.yaml')
config = LinkageConfig(**parse_config(path=config_path))
