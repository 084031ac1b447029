"""
Job configuration: YAML file first, environment variables on top.
"""

import logging
import os
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from config_loader import ConfigError, get_section, load_yaml_config
from pageviews.lib.hours import DEFAULT_URL_TEMPLATE, truncate_to_hour, validate_dates

logger = logging.getLogger(__name__)

DEFAULT_BLACKLIST = "blacklist_domains_and_pages"
CONFIG_ENV = "PAGEVIEWS_CONFIG"


@dataclass
class SparkConfig:
    """Spark session settings"""
    master: str = "local[*]"
    app_name: str = "wiki-top-pageviews"
    shuffle_partitions: int = 16

    def __post_init__(self):
        if not self.master:
            raise ValueError("spark.master cannot be empty")
        if self.shuffle_partitions < 1:
            raise ValueError(f"shuffle_partitions must be >= 1, got {self.shuffle_partitions}")


@dataclass
class JobConfig:
    """Paths and ranking knobs for the hourly loop"""
    output_dir: str = "output"
    temp_dir: str = "temp"
    blacklist_path: str = DEFAULT_BLACKLIST
    top_n: int = 25
    tie_break_by_title: bool = False

    def __post_init__(self):
        if self.top_n < 1:
            raise ValueError(f"top_n must be >= 1, got {self.top_n}")
        if not self.blacklist_path:
            raise ValueError("job.blacklist_path is required")


@dataclass
class DownloadConfig:
    """Dump download settings"""
    url_template: str = DEFAULT_URL_TEMPLATE
    connect_timeout_sec: float = 15.0
    read_timeout_sec: float = 15.0
    verify_tls: bool = False
    user_agent: str = "wiki-top-pageviews/0.1 (hourly batch job)"

    def __post_init__(self):
        if self.connect_timeout_sec <= 0 or self.read_timeout_sec <= 0:
            raise ValueError("download timeouts must be > 0")
        for placeholder in ("{year}", "{month}", "{iso_date}", "{hhmmss}"):
            if placeholder not in self.url_template:
                raise ValueError(f"download.url_template is missing {placeholder}")


@dataclass
class LegacyConfig:
    """Switches that reproduce the old job's behaviour for parity checks"""
    fetch_start_hour: bool = False
    stop_on_existing_output: bool = False


@dataclass
class LogsConfig:
    level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if not isinstance(logging.getLevelName(self.level.upper()), int):
            raise ValueError(f"Unknown log level: {self.level}")


@dataclass
class StatsConfig:
    enabled: bool = True
    dir: str = "stats"


@dataclass
class PipelineConfig:
    """Main job configuration. Date rules are checked on construction."""
    start_time: datetime
    end_time: datetime

    spark: SparkConfig = field(default_factory=SparkConfig)
    job: JobConfig = field(default_factory=JobConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    legacy: LegacyConfig = field(default_factory=LegacyConfig)
    logs: LogsConfig = field(default_factory=LogsConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)

    def __post_init__(self):
        self.start_time = truncate_to_hour(self.start_time)
        self.end_time = truncate_to_hour(self.end_time)
        validate_dates(self.start_time, self.end_time)

    @property
    def output_dir(self) -> Path:
        return Path(self.job.output_dir)

    @property
    def temp_dir(self) -> Path:
        return Path(self.job.temp_dir)

    @property
    def blacklist_path(self) -> Path:
        return Path(self.job.blacklist_path)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat()
        return data


def parse_timestamp(value: Any, name: str) -> datetime:
    """Parse an ISO-8601 local date-time and truncate it to the hour."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ConfigError(f"{name} is not an ISO-8601 date-time: {value!r}") from exc

    if parsed.tzinfo is not None:
        raise ConfigError(f"{name} must be a local date-time without an offset: {value!r}")

    truncated = truncate_to_hour(parsed)
    if truncated != parsed:
        logger.warning(f"{name} {parsed.isoformat()} is not hour-aligned; using {truncated.isoformat()}")
    return truncated


def _bool_env(environ: Mapping[str, str], name: str, default: bool) -> bool:
    val = environ.get(name)
    if val is None or val == "":
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    val = environ.get(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {val!r}") from exc


def _build_section(cls, raw: Dict[str, Any], section: str):
    try:
        return cls(**raw)
    except TypeError as exc:
        raise ConfigError(f"Unknown key in section '{section}': {exc}") from exc


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """
    Build the pipeline configuration.

    Args:
        path: Optional YAML file; falls back to ``$PAGEVIEWS_CONFIG``
        environ: Environment mapping, ``os.environ`` by default

    Raises:
        ConfigError: malformed file, unknown keys or missing ``start_time``
        ValueError: a section or the date range failed validation
    """
    environ = os.environ if environ is None else environ
    data = load_yaml_config(path or environ.get(CONFIG_ENV))

    spark_raw = get_section(data, "spark")
    job_raw = get_section(data, "job")
    download_raw = get_section(data, "download")
    legacy_raw = get_section(data, "legacy")
    logs_raw = get_section(data, "logs")
    stats_raw = get_section(data, "stats")

    if environ.get("SPARK_MASTER"):
        spark_raw["master"] = environ["SPARK_MASTER"]

    start_raw = job_raw.pop("start_time", None)
    end_raw = job_raw.pop("end_time", None)
    if environ.get("START_TIME"):
        start_raw = environ["START_TIME"]
    if "END_TIME" in environ:
        end_raw = environ["END_TIME"]

    if environ.get("PAGEVIEWS_OUTPUT_DIR"):
        job_raw["output_dir"] = environ["PAGEVIEWS_OUTPUT_DIR"]
    if environ.get("PAGEVIEWS_TEMP_DIR"):
        job_raw["temp_dir"] = environ["PAGEVIEWS_TEMP_DIR"]
    if environ.get("PAGEVIEWS_BLACKLIST"):
        job_raw["blacklist_path"] = environ["PAGEVIEWS_BLACKLIST"]
    job_raw["top_n"] = _int_env(environ, "PAGEVIEWS_TOP_N", job_raw.get("top_n", 25))
    job_raw["tie_break_by_title"] = _bool_env(
        environ, "PAGEVIEWS_TIE_BREAK_BY_TITLE", job_raw.get("tie_break_by_title", False)
    )

    download_raw["verify_tls"] = _bool_env(
        environ, "PAGEVIEWS_VERIFY_TLS", download_raw.get("verify_tls", False)
    )

    legacy_raw["fetch_start_hour"] = _bool_env(
        environ, "PAGEVIEWS_LEGACY_FETCH_START_HOUR", legacy_raw.get("fetch_start_hour", False)
    )
    legacy_raw["stop_on_existing_output"] = _bool_env(
        environ, "PAGEVIEWS_LEGACY_STOP_ON_EXISTING", legacy_raw.get("stop_on_existing_output", False)
    )

    if environ.get("PAGEVIEWS_LOG_LEVEL"):
        logs_raw["level"] = environ["PAGEVIEWS_LOG_LEVEL"]
    stats_raw["enabled"] = _bool_env(environ, "PAGEVIEWS_STATS", stats_raw.get("enabled", True))

    if start_raw is None or str(start_raw).strip() == "":
        raise ConfigError("start_time is required (job.start_time or $START_TIME)")

    start_time = parse_timestamp(start_raw, "start_time")
    # A blank end_time means a single-hour run.
    if end_raw is None or str(end_raw).strip() == "":
        end_time = start_time
    else:
        end_time = parse_timestamp(end_raw, "end_time")

    return PipelineConfig(
        start_time=start_time,
        end_time=end_time,
        spark=_build_section(SparkConfig, spark_raw, "spark"),
        job=_build_section(JobConfig, job_raw, "job"),
        download=_build_section(DownloadConfig, download_raw, "download"),
        legacy=_build_section(LegacyConfig, legacy_raw, "legacy"),
        logs=_build_section(LogsConfig, logs_raw, "logs"),
        stats=_build_section(StatsConfig, stats_raw, "stats"),
    )
