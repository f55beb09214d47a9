import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import tomli as tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:  # Python < 3.11
        import tomli as tomllib

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "blindsolve" / "config.toml"


class Config:
    def __init__(self, data: dict, platform: str | None = None):
        self._data = data
        # Resolved once here and injected into the solvers.
        self._platform = (
            platform or data.get("platform", {}).get("name", None) or sys.platform
        )

    def _section(self, name: str) -> dict:
        return self._data.get(name, {})

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def astrometry_api_key(self):
        key = self._section("astrometry").get("api_key", "")
        return (key or "").strip()

    @property
    def astrometry_api_url(self):
        return self._section("astrometry").get("api_url", "http://nova.astrometry.net/api/")

    @property
    def astrometry_request_timeout_s(self):
        return float(self._section("astrometry").get("request_timeout_s", 15.0))

    @property
    def astrometry_upload_timeout_s(self):
        return float(self._section("astrometry").get("upload_timeout_s", 60.0))

    @property
    def astrometry_poll_interval_s(self):
        return float(self._section("astrometry").get("poll_interval_s", 10.0))

    @property
    def astrometry_max_poll_attempts(self):
        return int(self._section("astrometry").get("max_poll_attempts", 90))

    @property
    def astap_executable(self):
        path = self._section("astap").get("executable", None)
        if not path:
            return None
        return str(Path(path).expanduser())

    @property
    def astap_timeout_s(self):
        return float(self._section("astap").get("timeout_s", 180.0))

    @property
    def astap_artifact_wait_s(self):
        return float(self._section("astap").get("artifact_wait_s", 180.0))

    @property
    def astap_artifact_poll_s(self):
        return float(self._section("astap").get("artifact_poll_s", 5.0))

    @property
    def astap_search_radius_deg(self):
        return float(self._section("astap").get("search_radius_deg", 179))

    @property
    def astap_fov_deg(self):
        return float(self._section("astap").get("fov_deg", 0))

    @property
    def astap_downsample(self):
        return int(self._section("astap").get("downsample", 0))

    def with_overrides(
        self, api_key: str | None = None, astap_executable: str | None = None
    ) -> "Config":
        data = {name: dict(section) for name, section in self._data.items() if isinstance(section, dict)}
        if api_key is not None:
            data.setdefault("astrometry", {})["api_key"] = api_key
        if astap_executable is not None:
            data.setdefault("astap", {})["executable"] = astap_executable
        return Config(data, platform=self._platform)


def load_config(path: Path | None = None) -> Config:
    explicit_path = path
    path = path or DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit_path is not None:
            raise FileNotFoundError(f"Config file not found: {path}")
        # Return default config if default file missing
        return Config({})

    with open(path, "rb") as f:
        data = tomllib.load(f)

    return Config(data)
