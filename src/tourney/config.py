"""
Engine settings, read from a YAML file with environment overrides.
"""
import logging
import os

import yaml

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

DEFAULTS = {
    'recheck_delay_seconds': 5,
    'post_generation_delay_seconds': 2,
    'lock_timeout_seconds': 10,
    'min_singles_participants': 2,
    'min_doubles_teams': 2,
    'self_delete_grace_seconds': 30,
}


class Settings:
    def __init__(self, data_dir=None, **values):
        self.data_dir = data_dir or default_data_dir()
        merged = dict(DEFAULTS)
        merged.update({k: v for k, v in values.items() if k in DEFAULTS and v is not None})
        self.recheck_delay_seconds = float(merged['recheck_delay_seconds'])
        self.post_generation_delay_seconds = float(merged['post_generation_delay_seconds'])
        self.lock_timeout_seconds = float(merged['lock_timeout_seconds'])
        self.min_singles_participants = int(merged['min_singles_participants'])
        self.min_doubles_teams = int(merged['min_doubles_teams'])
        self.self_delete_grace_seconds = float(merged['self_delete_grace_seconds'])

    def __repr__(self):
        return (f"Settings(data_dir={self.data_dir}, recheck_delay_seconds={self.recheck_delay_seconds}, "
                f"post_generation_delay_seconds={self.post_generation_delay_seconds})")


def default_data_dir():
    return os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))


def load_settings(path=None) -> Settings:
    """Load settings from YAML. A missing or unreadable file gives the defaults."""
    data_dir = default_data_dir()
    path = path or os.environ.get('TOURNAMENT_SETTINGS_FILE') or os.path.join(data_dir, 'settings.yaml')
    if not os.path.exists(path):
        return Settings(data_dir=data_dir)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return Settings(data_dir=data_dir)
    if not isinstance(data, dict):
        return Settings(data_dir=data_dir)
    if 'data_dir' in data and 'TOURNAMENT_DATA_DIR' not in os.environ:
        data_dir = data['data_dir']
    values = {k: v for k, v in data.items() if k in DEFAULTS}
    return Settings(data_dir=data_dir, **values)
