"""Configuration persistence for the GA II coolant monitor.

Config is stored at ~/.config/gaii/config.json (XDG-compliant) and
rewritten on every change.

Usage:
    from gaii.conf import load_settings, save_pump_speed

    cfg = load_settings()
    cfg.device_id       # HID path or serial ("" = first match)
    cfg.pwm_sync        # send PWM sync enable at startup
    cfg.pump_speed      # 1-100 (%)
    cfg.backend         # "hidapi" or "pyusb"

    # Low-level config access
    from gaii.conf import load_config, save_config
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass

from .constants import BACKENDS, PUMP_SPEED_MAX, PUMP_SPEED_MIN

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'gaii')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", CONFIG_PATH, e)
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(os.path.dirname(CONFIG_PATH), exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


# =========================================================================
# Typed settings
# =========================================================================

def validate_pump_speed(speed: int) -> int:
    """Return *speed* as int, or raise ValueError outside 1-100."""
    speed = int(speed)
    if not PUMP_SPEED_MIN <= speed <= PUMP_SPEED_MAX:
        raise ValueError(
            f"Pump speed must be {PUMP_SPEED_MIN}-{PUMP_SPEED_MAX}%, got {speed}"
        )
    return speed


def validate_backend(backend: str) -> str:
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend {backend!r} (expected one of {', '.join(BACKENDS)})")
    return backend


@dataclass
class CoolerConfig:
    """Persisted cooler settings."""
    device_id: str = ""
    pwm_sync: bool = True
    pump_speed: int = PUMP_SPEED_MAX
    backend: str = "hidapi"

    @classmethod
    def from_dict(cls, data: dict) -> CoolerConfig:
        """Build from a config dict, falling back to defaults for bad values."""
        cfg = cls()
        cfg.device_id = str(data.get('device_id', cfg.device_id) or "")
        cfg.pwm_sync = bool(data.get('pwm_sync', cfg.pwm_sync))
        try:
            cfg.pump_speed = validate_pump_speed(data.get('pump_speed', cfg.pump_speed))
        except (TypeError, ValueError) as e:
            log.warning("Config pump_speed ignored: %s", e)
        try:
            cfg.backend = validate_backend(data.get('backend', cfg.backend))
        except ValueError as e:
            log.warning("Config backend ignored: %s", e)
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


def load_settings() -> CoolerConfig:
    """Load typed settings (defaults when no config exists)."""
    return CoolerConfig.from_dict(load_config())


def save_settings(cfg: CoolerConfig):
    """Persist all typed settings, keeping unrelated keys in the file."""
    validate_pump_speed(cfg.pump_speed)
    validate_backend(cfg.backend)
    config = load_config()
    config.update(cfg.to_dict())
    save_config(config)


def _save_setting(key: str, value):
    config = load_config()
    config[key] = value
    save_config(config)
    log.info("Config: %s = %r", key, value)


def save_pump_speed(speed: int):
    """Persist pump speed (1-100%)."""
    _save_setting('pump_speed', validate_pump_speed(speed))


def save_pwm_sync(enabled: bool):
    """Persist PWM sync on/off."""
    _save_setting('pwm_sync', bool(enabled))


def save_device_id(device_id: str):
    """Persist the selected device (HID path or serial, "" = first match)."""
    _save_setting('device_id', device_id or "")


def save_backend(backend: str):
    """Persist the HID backend (hidapi or pyusb)."""
    _save_setting('backend', validate_backend(backend))
