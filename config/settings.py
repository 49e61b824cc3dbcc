import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
	BaseSettings,
	PydanticBaseSettingsSource,
	SettingsConfigDict,
	TomlConfigSettingsSource,
)

from domain.exceptions.pricing import ConfigErrorKind, ConfigurationError

CONFIG_FILE_NAME = 'pricr.toml'
DEFAULT_CURRENCY = 'usd'


def default_config_path() -> Path | None:
	explicit = os.getenv('PRICR_CONFIG_FILE', '').strip()
	if explicit:
		return Path(explicit).expanduser()

	xdg_config_home = os.getenv('XDG_CONFIG_HOME', '').strip()
	if xdg_config_home:
		return Path(xdg_config_home) / CONFIG_FILE_NAME

	home = os.getenv('HOME', '').strip()
	if not home:
		return None
	return Path(home) / '.config' / CONFIG_FILE_NAME


class DefaultsConfig(BaseModel):
	currency: str | None = None
	provider_order: list[str] | None = None


class CoinMarketCapConfig(BaseModel):
	api_key: str | None = None


class Settings(BaseSettings):
	APP_NAME: str = 'pricr'
	DEBUG: bool = False

	CACHE_DIR: Path | None = None
	HTTP_TIMEOUT: float = 10.0

	LOG_LEVEL: str = 'INFO'
	LOG_JSON: bool = False

	# Sections mirroring pricr.toml
	defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
	coinmarketcap: CoinMarketCapConfig = Field(default_factory=CoinMarketCapConfig)
	watchlists: dict[str, list[str]] = Field(default_factory=dict)

	model_config = SettingsConfigDict(
		env_prefix='PRICR_',
		env_file='.env',
		env_nested_delimiter='__',
		case_sensitive=False,
		extra='ignore',
	)

	@classmethod
	def settings_customise_sources(
		cls,
		settings_cls: type[BaseSettings],
		init_settings: PydanticBaseSettingsSource,
		env_settings: PydanticBaseSettingsSource,
		dotenv_settings: PydanticBaseSettingsSource,
		file_secret_settings: PydanticBaseSettingsSource,
	) -> tuple[PydanticBaseSettingsSource, ...]:
		sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings, dotenv_settings)
		config_path = default_config_path()
		if config_path is not None:
			sources += (TomlConfigSettingsSource(settings_cls, toml_file=config_path),)
		return sources

	@property
	def default_currency(self) -> str:
		return (self.defaults.currency or DEFAULT_CURRENCY).strip().lower()

	@property
	def coinmarketcap_api_key(self) -> str | None:
		key = self.coinmarketcap.api_key or os.getenv('COINMARKETCAP_API_KEY')
		if key and key.strip():
			return key.strip()
		return None


def load_settings(**overrides) -> Settings:
	try:
		return Settings(**overrides)
	except tomllib.TOMLDecodeError as e:
		raise ConfigurationError(
			f"failed to parse config file '{default_config_path()}': {e}",
			kind=ConfigErrorKind.INVALID_CONFIG,
		) from e
	except ValidationError as e:
		raise ConfigurationError(
			f'invalid configuration: {e.errors()[0].get("msg", str(e))}',
			kind=ConfigErrorKind.INVALID_CONFIG,
		) from e


@lru_cache
def get_settings() -> Settings:
	return load_settings()
