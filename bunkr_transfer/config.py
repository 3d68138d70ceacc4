import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional


CONFIG_FILENAME = "bunkr_uploader.json"


@dataclass
class ClientConfig:
    default_batch_size: int = 1
    default_album_id: Optional[str] = None
    default_album_name: Optional[str] = None
    preprocess_videos: bool = True

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ClientConfig":
        path = path or config_path()
        if not path.exists():
            return cls()
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
        config = cls()
        for key, value in raw.items():
            if key in KEYS and value is not None:
                config.set_value(key, str(value))
        return config

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2) + "\n", encoding="utf-8")
        return path

    def get_value(self, key: str) -> str:
        if key not in KEYS:
            raise KeyError(f"Unknown key: {key}")
        return format_value(getattr(self, key))

    def set_value(self, key: str, value: str) -> None:
        if key not in KEYS:
            raise KeyError(f"Unknown key: {key}")
        setattr(self, key, KEYS[key](value))

    def rows(self) -> list[tuple[str, str, str]]:
        defaults = ClientConfig()
        return [(key, self.get_value(key), defaults.get_value(key)) for key in KEYS]


def format_value(value: object) -> str:
    if value is None:
        return "none"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_positive_int(value: str) -> int:
    number = int(value.strip())
    if number < 1:
        raise ValueError(f"Expected a positive integer, got {value!r}")
    return number


def parse_optional(value: str) -> Optional[str]:
    value = value.strip()
    return None if value.lower() in {"", "none"} else value


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"true", "1", "yes", "on"}:
        return True
    if lowered in {"false", "0", "no", "off"}:
        return False
    raise ValueError(f"Expected true or false, got {value!r}")


KEYS = {
    "default_batch_size": parse_positive_int,
    "default_album_id": parse_optional,
    "default_album_name": parse_optional,
    "preprocess_videos": parse_bool,
}


def config_path() -> Path:
    explicit = os.environ.get("BUNKR_CLIENT_CONFIG")
    if explicit:
        return Path(explicit)
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / CONFIG_FILENAME
