"""
Engine Configuration - timeouts, retry budget and logging from env/.env/YAML
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .timeouts import SessionOptions, TimeoutKey

logger = structlog.get_logger(__name__)

ENV_PREFIX = "TXPILOT_"
TIMEOUT_ENV_PREFIX = ENV_PREFIX + "TIMEOUT_"

RETRY_STRATEGIES = ("always", "occ_ltx")
TRANSACTION_TYPES = ("occ", "ltx", "rtx")
COMMIT_TYPES = ("default", "accepted", "available", "stored", "propagated")


class EngineSettings(BaseModel):
    """
    Engine settings

    Timeouts are seconds; None means unbounded.
    """
    default_timeout: Optional[float] = None
    timeouts: Dict[str, float] = Field(default_factory=dict)
    commit_type: str = "default"
    transaction_type: str = "occ"
    write_preserve: List[str] = Field(default_factory=list)
    label: Optional[str] = None
    retry_strategy: str = "always"
    max_attempts: int = 3
    occ_attempts: int = 3
    ltx_attempts: int = 1
    log_level: str = "info"
    log_format: str = "console"

    @field_validator("timeouts")
    @classmethod
    def validate_timeout_keys(cls, value: Dict[str, float]) -> Dict[str, float]:
        known = {key.value for key in TimeoutKey}
        for name, seconds in value.items():
            if name not in known:
                raise ValueError(f"unknown timeout key: {name}")
            if seconds < 0:
                raise ValueError(f"timeout must not be negative: {name}={seconds}")
        return value

    @field_validator("retry_strategy")
    @classmethod
    def validate_retry_strategy(cls, value: str) -> str:
        value = value.lower()
        if value not in RETRY_STRATEGIES:
            raise ValueError(f"retry_strategy must be one of {RETRY_STRATEGIES}")
        return value

    @field_validator("transaction_type")
    @classmethod
    def validate_transaction_type(cls, value: str) -> str:
        value = value.lower()
        if value not in TRANSACTION_TYPES:
            raise ValueError(f"transaction_type must be one of {TRANSACTION_TYPES}")
        return value

    @field_validator("commit_type")
    @classmethod
    def validate_commit_type(cls, value: str) -> str:
        value = value.lower()
        if value not in COMMIT_TYPES:
            raise ValueError(f"commit_type must be one of {COMMIT_TYPES}")
        return value

    @field_validator("max_attempts", "occ_attempts", "ltx_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("attempt count must be at least 1")
        return value

    def to_session_options(self) -> SessionOptions:
        options = SessionOptions(label=self.label)
        if self.default_timeout is not None:
            options.set_timeout(TimeoutKey.DEFAULT, self.default_timeout)
        for name, seconds in self.timeouts.items():
            options.set_timeout(TimeoutKey(name), seconds)
        return options

    def to_transaction_option(self):
        from transaction.options import TransactionOption

        if self.transaction_type == "ltx":
            option = TransactionOption.of_ltx(*self.write_preserve)
        elif self.transaction_type == "rtx":
            option = TransactionOption.of_rtx()
        else:
            option = TransactionOption.of_occ()
        return option.with_label(self.label)

    def to_tm_setting(self):
        """Build the TmSetting these settings describe"""
        from execution.option_supplier import AlwaysOptionSupplier, OccLtxOptionSupplier
        from execution.settings import TmSetting
        from transaction.options import CommitType, TransactionOption

        if self.retry_strategy == "occ_ltx":
            ltx_option = TransactionOption.of_ltx(*self.write_preserve)
            supplier = OccLtxOptionSupplier(TransactionOption.of_occ(), self.occ_attempts,
                                            ltx_option, self.ltx_attempts)
        else:
            supplier = AlwaysOptionSupplier(self.to_transaction_option(), self.max_attempts)
        return TmSetting(supplier, label=self.label, commit_type=CommitType(self.commit_type))


def _settings_from_env(environ) -> Dict[str, object]:
    values: Dict[str, object] = {}
    timeouts: Dict[str, str] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        if name.startswith(TIMEOUT_ENV_PREFIX):
            timeouts[name[len(TIMEOUT_ENV_PREFIX):].lower()] = raw
            continue
        field = name[len(ENV_PREFIX):].lower()
        if field not in EngineSettings.model_fields or field == "timeouts":
            logger.warning("config_unknown_env", name=name)
            continue
        if field == "write_preserve":
            values[field] = [table.strip() for table in raw.split(",") if table.strip()]
        else:
            values[field] = raw
    if timeouts:
        values["timeouts"] = timeouts
    return values


def load_settings(env_file: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Load settings from TXPILOT_* environment variables

    Args:
        env_file: Optional .env file loaded first (existing variables win)

    Returns:
        EngineSettings
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("config_env_file_loaded", path=str(env_path))
        else:
            logger.warning("config_env_file_missing", path=str(env_path))
    return EngineSettings(**_settings_from_env(os.environ))


def load_settings_from_yaml(path: Union[str, Path]) -> EngineSettings:
    """Load settings from a YAML mapping with the EngineSettings field names"""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"settings file must contain a mapping: {path}")
    logger.info("config_yaml_loaded", path=str(path))
    return EngineSettings(**data)
