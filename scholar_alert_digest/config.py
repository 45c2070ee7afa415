import copy
import os

import yaml

script_path = os.path.dirname(os.path.abspath(__file__))
CONFIG_FILE = os.path.join(script_path, "config.yml")


def _read_yaml(path):
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def load_config(path=None):
    """
    Loads the bundled config.yml, with values from `path` (or the file named by
    the SAD_CONFIG env variable) merged over it, section by section.
    The SAD_LABEL env variable, if set, overrides gmail.label.
    """
    config = _read_yaml(CONFIG_FILE)
    path = path or os.environ.get("SAD_CONFIG")
    if path:
        for section, values in _read_yaml(path).items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section] = {**config[section], **values}
            else:
                config[section] = copy.deepcopy(values)

    env_label = os.environ.get("SAD_LABEL")
    if env_label is not None:
        config.setdefault('gmail', {})['label'] = env_label
    return config
